"""
Flag PENDING boletos and receivables past their due date as OVERDUE.

Usage:
    python manage.py mark_overdue_obligations
    python manage.py mark_overdue_obligations --as-of 2024-06-01
"""

import datetime

from django.core.management.base import BaseCommand, CommandError

from financial.services import ObligationService


def _parse_date(value: str) -> datetime.date:
    try:
        return datetime.date.fromisoformat(value)
    except ValueError as e:
        raise CommandError(f"Invalid date {value!r}, expected YYYY-MM-DD") from e


class Command(BaseCommand):
    help = "Mark PENDING obligations whose due date has passed as OVERDUE."

    def add_arguments(self, parser):
        parser.add_argument(
            "--as-of",
            dest="as_of",
            help="Business date to sweep against (default: today, local time).",
        )

    def handle(self, *args, **options):
        as_of = _parse_date(options["as_of"]) if options.get("as_of") else None
        result = ObligationService.mark_overdue(as_of=as_of)

        self.stdout.write(
            self.style.SUCCESS(
                f"{result.as_of.isoformat()}: {result.boletos} boletos and "
                f"{result.receivables} receivables marked overdue "
                f"({len(result.customer_ids)} customers)."
            )
        )
