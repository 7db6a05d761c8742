"""
Financial admin configuration.

This file imports admin configurations from the ledger submodule and
registers obligation, webhook journal and audit models.

Obligation status is read-only here: paying or cancelling goes through
ObligationService so available credit is recomputed in the same
transaction. The admin actions below call the service.
"""

from django.contrib import admin, messages

from core.exceptions import BaseApplicationError
from financial.ledger.admin import BankAccountAdmin, TransactionAdmin
from financial.models import (
    AuditRun,
    Boleto,
    DriftCorrection,
    ProviderWebhookEvent,
    Receivable,
)
from financial.services import ObligationService

__all__ = [
    "AuditRunAdmin",
    "BankAccountAdmin",
    "BoletoAdmin",
    "ProviderWebhookEventAdmin",
    "ReceivableAdmin",
    "TransactionAdmin",
]


# =============================================================================
# Obligations
# =============================================================================


class ObligationAdminMixin:
    """Shared list configuration and cancel action for obligations."""

    list_filter = ["status", "payment_method", "due_date"]
    date_hierarchy = "due_date"
    raw_id_fields = ["customer", "order", "paid_by"]
    actions = ["cancel_selected"]

    @admin.display(description="Amount")
    def amount_display(self, obj) -> str:
        return str(obj.amount)

    @admin.action(description="Cancel selected obligations")
    def cancel_selected(self, request, queryset):
        cancelled = 0
        for obligation in queryset:
            try:
                ObligationService.cancel(obligation.pk, cancelled_by=request.user)
                cancelled += 1
            except BaseApplicationError as e:
                self.message_user(request, f"{obligation}: {e.message}", level=messages.WARNING)
        self.message_user(request, f"Cancelled {cancelled} obligations.")


@admin.register(Boleto)
class BoletoAdmin(ObligationAdminMixin, admin.ModelAdmin):
    """Admin configuration for Boleto."""

    list_display = [
        "id",
        "customer",
        "amount_display",
        "status",
        "due_date",
        "paid_date",
        "pix_payment_id",
    ]
    search_fields = ["id", "pix_payment_id", "boleto_number", "customer__name"]
    readonly_fields = ["id", "status", "paid_date", "paid_amount_cents", "created_at", "updated_at"]


@admin.register(Receivable)
class ReceivableAdmin(ObligationAdminMixin, admin.ModelAdmin):
    """Admin configuration for Receivable."""

    list_display = [
        "id",
        "customer",
        "amount_display",
        "status",
        "due_date",
        "payment_date",
        "boleto",
    ]
    search_fields = ["id", "customer__name", "description"]
    raw_id_fields = ["customer", "order", "paid_by", "boleto", "remainder_of"]
    readonly_fields = [
        "id",
        "status",
        "payment_date",
        "paid_amount_cents",
        "created_at",
        "updated_at",
    ]


# =============================================================================
# Webhook journal
# =============================================================================


@admin.register(ProviderWebhookEvent)
class ProviderWebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for ProviderWebhookEvent.

    Provides visibility into what the provider sent and what was done
    with it. Events are immutable once received.
    """

    list_display = [
        "event_id",
        "event_type",
        "provider_reference",
        "provider_status",
        "status",
        "outcome",
        "attempts",
        "created_at",
    ]
    list_filter = ["status", "event_type", "outcome", "created_at"]
    search_fields = ["event_id", "provider_reference"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "event_id", "event_type", "provider_reference", "provider_status"),
            },
        ),
        (
            "Processing",
            {
                "fields": ("status", "outcome", "attempts", "processed_at"),
            },
        ),
        (
            "Error Info",
            {
                "fields": ("error_message",),
                "classes": ("collapse",),
            },
        ),
        (
            "Payload",
            {
                "fields": ("payload",),
                "classes": ("collapse",),
            },
        ),
    )

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for webhook events (audit trail)."""
        return False


# =============================================================================
# Audit
# =============================================================================


class DriftCorrectionInline(admin.TabularInline):
    """Inline display of corrections made by an audit run."""

    model = DriftCorrection
    extra = 0
    fields = ["customer", "bank_account", "before_cents", "after_cents", "corrected_rows"]
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(AuditRun)
class AuditRunAdmin(admin.ModelAdmin):
    """
    Admin configuration for AuditRun.

    Runs are created by DriftAuditService and are read-only here.
    """

    list_display = [
        "id",
        "kind",
        "status",
        "entities_checked",
        "discrepancies_found",
        "corrections_applied",
        "performed_by",
        "started_at",
    ]
    list_filter = ["kind", "status", "started_at"]
    ordering = ["-started_at"]
    inlines = [DriftCorrectionInline]

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False
