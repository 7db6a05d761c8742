"""
Audit bank account balances against their transaction history.

Usage:
    python manage.py audit_balances              # dry run, writes nothing
    python manage.py audit_balances --apply      # prompts, then recomputes
    python manage.py audit_balances --apply --yes
"""

from django.core.management.base import BaseCommand, CommandError

from core.exceptions import BaseApplicationError
from financial.services import DriftAuditService


class Command(BaseCommand):
    help = "Replay every bank account's transactions and compare with cached balances."

    def add_arguments(self, parser):
        parser.add_argument(
            "--apply",
            action="store_true",
            help="Recompute every drifted account from its history.",
        )
        parser.add_argument(
            "--yes",
            action="store_true",
            help="Skip the confirmation prompt (with --apply).",
        )

    def handle(self, *args, **options):
        report = DriftAuditService.audit_account_balances()

        self.stdout.write(
            f"Checked {report.accounts_checked} accounts, "
            f"{len(report.discrepancies)} drifted."
        )
        for item in report.discrepancies:
            self.stdout.write(
                f"  {item.account_name} ({item.account_id}): cached {item.stored_balance}, "
                f"ledger {item.ledger_balance}, {item.drifted_rows} stale snapshots"
            )

        if not report.has_drift:
            self.stdout.write(self.style.SUCCESS("No drift found."))
            return

        if not options["apply"]:
            self.stdout.write("Dry run: nothing was changed. Use --apply to correct.")
            return

        if not options["yes"]:
            answer = input(f"Recompute {len(report.discrepancies)} accounts? Type 'yes' to continue: ")
            if answer.strip().lower() != "yes":
                self.stdout.write(self.style.WARNING("Aborted, nothing was changed."))
                return

        try:
            report = DriftAuditService.apply_balance_fixes(report, confirm=True)
        except BaseApplicationError as e:
            raise CommandError(str(e)) from e

        self.stdout.write(
            self.style.SUCCESS(f"Corrected {report.corrected} accounts (run {report.run_id}).")
        )
