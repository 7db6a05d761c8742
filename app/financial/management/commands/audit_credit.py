"""
Audit customer available credit against outstanding obligations.

Usage:
    python manage.py audit_credit              # dry run, writes nothing
    python manage.py audit_credit --strict     # exit non-zero on drift
    python manage.py audit_credit --apply      # prompts, then corrects
    python manage.py audit_credit --apply --yes
"""

from django.core.management.base import BaseCommand, CommandError

from core.exceptions import BaseApplicationError
from financial.services import DriftAuditService


class Command(BaseCommand):
    help = "Compare stored available credit with the value derived from obligations."

    def add_arguments(self, parser):
        parser.add_argument(
            "--apply",
            action="store_true",
            help="Persist the derived value for every drifted customer.",
        )
        parser.add_argument(
            "--yes",
            action="store_true",
            help="Skip the confirmation prompt (with --apply).",
        )
        parser.add_argument(
            "--strict",
            action="store_true",
            help="Fail when drift is found (dry run only).",
        )

    def handle(self, *args, **options):
        report = DriftAuditService.audit_customer_credit()

        self.stdout.write(
            f"Checked {report.customers_checked} customers, "
            f"{len(report.discrepancies)} with drifted credit."
        )
        for item in report.discrepancies:
            self.stdout.write(
                f"  customer {item.customer_id} ({item.customer_name}): "
                f"stored {item.stored}, expected {item.expected}, "
                f"difference {item.difference} "
                f"[boletos={item.breakdown.boleto_count} "
                f"receivables={item.breakdown.receivable_count} "
                f"linked={item.breakdown.linked_receivable_count}]"
            )

        if not report.has_drift:
            self.stdout.write(self.style.SUCCESS("No drift found."))
            return

        if not options["apply"]:
            if options["strict"]:
                raise CommandError(f"{len(report.discrepancies)} customers have drifted credit")
            self.stdout.write("Dry run: nothing was changed. Use --apply to correct.")
            return

        if not options["yes"]:
            answer = input(f"Correct {len(report.discrepancies)} customers? Type 'yes' to continue: ")
            if answer.strip().lower() != "yes":
                self.stdout.write(self.style.WARNING("Aborted, nothing was changed."))
                return

        try:
            report = DriftAuditService.apply_credit_fixes(report, confirm=True)
        except BaseApplicationError as e:
            raise CommandError(str(e)) from e

        self.stdout.write(
            self.style.SUCCESS(f"Corrected {report.corrected} customers (run {report.run_id}).")
        )
