"""Pickup code validation at the store counter.

The code is typed digit by digit; the cursor advances on each digit and
the code is checked as soon as the last slot is filled.  A wrong code
shows an error, the slots clear themselves after one second and the
cursor goes back to the first slot.  There is no retry limit.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import StrEnum
from typing import Iterable

from modules.deliveries.constants import (
    PICKUP_CODE_LENGTH,
    PICKUP_ERROR_RESET_SECONDS,
)


class PickupOutcome(StrEnum):
    INCOMPLETE = "INCOMPLETE"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


def is_valid_code(
    code: str, valid_codes: Iterable[str] | None, fallback: str | None = None
) -> bool:
    """Membership in ``valid_codes``; ``fallback`` only when no codes are given."""
    codes = [c for c in (valid_codes or []) if c]
    if codes:
        return code in codes
    return fallback is not None and code == fallback


class PickupValidator:
    """Digit-entry session for one order or batch."""

    def __init__(
        self,
        valid_codes: Iterable[str],
        *,
        length: int = PICKUP_CODE_LENGTH,
        error_reset: float = PICKUP_ERROR_RESET_SECONDS,
    ) -> None:
        self.valid_codes = list(valid_codes)
        self.length = length
        self._error_reset = timedelta(seconds=error_reset)
        self.digits: list[str] = [""] * length
        self.focus_index = 0
        self.error = False
        self._error_at: datetime | None = None
        self.outcome = PickupOutcome.INCOMPLETE

    @property
    def code(self) -> str:
        return "".join(self.digits)

    def enter_digit(self, index: int, value: str, now: datetime) -> PickupOutcome:
        """Fill slot ``index``; anything but a single digit is ignored."""
        self.tick(now)
        if not (0 <= index < self.length) or len(value) != 1 or not value.isdigit():
            return self.outcome

        self.digits[index] = value
        if index < self.length - 1:
            self.focus_index = index + 1

        if all(self.digits):
            return self._evaluate(now)
        return self.outcome

    def backspace(self, index: int) -> None:
        """Clear a slot; on an empty slot move the cursor back one."""
        if not (0 <= index < self.length):
            return
        if self.digits[index]:
            self.digits[index] = ""
            self.focus_index = index
        elif index > 0:
            self.digits[index - 1] = ""
            self.focus_index = index - 1

    def submit(self, code: str, now: datetime) -> PickupOutcome:
        """Check a whole code at once (API path)."""
        code = (code or "").strip()
        if len(code) != self.length or not code.isdigit():
            self.digits = [""] * self.length
            return self._reject(now)
        self.digits = list(code)
        return self._evaluate(now)

    def tick(self, now: datetime) -> None:
        """Clear the slots once the error has been visible long enough."""
        if self.error and self._error_at is not None and now - self._error_at >= self._error_reset:
            self.digits = [""] * self.length
            self.focus_index = 0
            self.error = False
            self._error_at = None
            self.outcome = PickupOutcome.INCOMPLETE

    def _evaluate(self, now: datetime) -> PickupOutcome:
        if is_valid_code(self.code, self.valid_codes):
            self.error = False
            self.outcome = PickupOutcome.ACCEPTED
            return self.outcome
        return self._reject(now)

    def _reject(self, now: datetime) -> PickupOutcome:
        self.error = True
        self._error_at = now
        self.outcome = PickupOutcome.REJECTED
        return self.outcome
