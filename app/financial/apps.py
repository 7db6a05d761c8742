"""
Financial app configuration.

This app provides the financial core:
- Customer available credit derived from outstanding obligations
- Append-only bank transaction ledger
- Payment-provider reconciliation
- Drift audit and confirmed correction
"""

from django.apps import AppConfig


class FinancialConfig(AppConfig):
    """Configuration for the financial application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "financial"
    verbose_name = "Financial"
