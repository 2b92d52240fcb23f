import logging

import pytest
import structlog


@pytest.fixture()
def log():
    return structlog.get_logger("modules.deliveries.test")


class TestStructuredLogging:
    def test_events_reach_stdlib_logging(self, log, caplog):
        with caplog.at_level(logging.INFO):
            log.info("delivery.created", delivery_id="o1", fee="9.00")
        messages = [r.getMessage() for r in caplog.records]
        assert any("delivery.created" in m and "o1" in m for m in messages)

    def test_bound_context_is_carried(self, log, caplog):
        structlog.contextvars.bind_contextvars(correlation_id="req-789")
        try:
            with caplog.at_level(logging.INFO):
                log.info("sync.tick_completed", new=1)
        finally:
            structlog.contextvars.clear_contextvars()
        assert any("req-789" in r.getMessage() for r in caplog.records)

    def test_pickup_codes_never_reach_the_logs(self, log, caplog):
        with caplog.at_level(logging.INFO):
            log.info("delivery.pickup_checked", pickup_code="4821", collection_code="1357")
        message = " ".join(r.getMessage() for r in caplog.records)
        assert "'pickup_code': '***MASKED***'" in message
        assert "'collection_code': '***MASKED***'" in message

    def test_customer_phone_is_masked(self, log, caplog):
        with caplog.at_level(logging.INFO):
            log.info("delivery.created", note="ligar para (11) 98888-7777")
        message = " ".join(r.getMessage() for r in caplog.records)
        assert "98888-7777" not in message
