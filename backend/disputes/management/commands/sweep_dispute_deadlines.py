from django.core.management.base import BaseCommand, CommandError, CommandParser
from django.db import DatabaseError

from disputes.sweeper import DeadlineSweeper


class Command(BaseCommand):
    help = (
        "Escalate disputes whose negotiation deadline passed and close disputes whose "
        "arbitration deadline passed without a verdict. Same job the beat schedule runs."
    )

    def add_arguments(self, parser: CommandParser) -> None:
        only = parser.add_mutually_exclusive_group()
        only.add_argument("--negotiations-only", action="store_true", help="Only run the negotiation pass.")
        only.add_argument("--arbitrations-only", action="store_true", help="Only run the arbitration pass.")

    def _report(self, label, count):
        if count is None:
            self.stdout.write(self.style.WARNING(f"{label}: skipped (another sweep holds the lock)"))
        else:
            self.stdout.write(self.style.SUCCESS(f"{label}: {count}"))

    def handle(self, *args, **opts) -> None:
        sweeper = DeadlineSweeper()
        try:
            if opts.get("negotiations_only"):
                self._report("Escalated", sweeper.sweep_negotiations())
            elif opts.get("arbitrations_only"):
                self._report("Closed", sweeper.sweep_arbitrations())
            else:
                result = sweeper.run()
                self._report("Escalated", result.escalated)
                self._report("Closed", result.closed)
        except DatabaseError as e:
            raise CommandError(f"Sweep failed: {e}")
