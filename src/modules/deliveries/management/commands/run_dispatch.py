"""Run the board's sync and roaming loops in the foreground."""

from __future__ import annotations

import time

from django.core.management.base import BaseCommand

from modules.deliveries.runtime import get_dispatch_service, start_loops, stop_loops


class Command(BaseCommand):
    help = "Start the sync (3 s) and courier roaming (100 ms) loops until interrupted."

    def add_arguments(self, parser):
        parser.add_argument(
            "--once",
            action="store_true",
            help="Run a single sync tick and exit.",
        )

    def handle(self, *args, **options):
        service = get_dispatch_service()
        if options["once"]:
            outcome = service.sync_tick()
            self.stdout.write(
                self.style.SUCCESS(
                    f"Sync completed: new={len(outcome.new_orders)}, "
                    f"updated={len(outcome.updated)}, skipped={outcome.skipped}"
                )
            )
            return

        start_loops()
        self.stdout.write(
            self.style.SUCCESS(f"Dispatch loops running (couriers={len(service.pool)}).")
        )
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stdout.write("Stopping dispatch loops...")
        finally:
            stop_loops()
