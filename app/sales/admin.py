"""
Sales admin configuration.

Available credit is read-only: it is derived by CreditService. Changing
the credit limit through the admin goes through
CreditService.set_credit_limit so available credit follows.
"""

from django.contrib import admin

from financial.money import Money
from financial.services import CreditService
from sales.models import Customer, Order


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    """
    Admin configuration for Customer.

    Shows the stored available credit; the credit audit compares it with
    the derived value.
    """

    list_display = [
        "name",
        "document",
        "credit_limit_display",
        "available_credit_display",
        "is_active",
    ]
    list_filter = ["is_active"]
    search_fields = ["name", "document", "email"]
    readonly_fields = ["available_credit_cents", "created_at", "updated_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("name", "document", "email", "phone", "is_active"),
            },
        ),
        (
            "Credit",
            {
                "fields": ("credit_limit_cents", "available_credit_cents"),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    @admin.display(description="Credit limit")
    def credit_limit_display(self, obj: Customer) -> str:
        return str(obj.credit_limit)

    @admin.display(description="Available credit")
    def available_credit_display(self, obj: Customer) -> str:
        return str(obj.available_credit)

    def save_model(self, request, obj, form, change):
        limit_changed = "credit_limit_cents" in form.changed_data
        new_limit = Money(cents=obj.credit_limit_cents)
        if change and limit_changed:
            # Limit goes through the service; everything else saves normally
            obj.credit_limit_cents = form.initial["credit_limit_cents"]
            super().save_model(request, obj, form, change)
            CreditService.set_credit_limit(obj.pk, new_limit, changed_by=request.user)
            obj.refresh_from_db()
            return
        super().save_model(request, obj, form, change)
        if not change:
            CreditService.apply_and_persist(obj.pk)


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Admin configuration for Order."""

    list_display = [
        "order_number",
        "customer",
        "total_display",
        "payment_method",
        "payment_status",
        "paid_at",
        "created_at",
    ]
    list_filter = ["payment_status", "payment_method"]
    search_fields = ["order_number", "customer__name"]
    raw_id_fields = ["customer"]
    readonly_fields = ["payment_status", "paid_at", "created_at", "updated_at"]

    @admin.display(description="Total")
    def total_display(self, obj: Order) -> str:
        return str(obj.total)
