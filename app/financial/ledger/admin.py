"""
Django admin configuration for bank ledger models.

Key features:
- Transaction is immutable (no add/edit/delete permissions)
- BankAccount balance is read-only: it only moves through postings
- Ledger balance (sum of transactions) shown next to the cached balance
"""

from django.contrib import admin

from .models import BankAccount, Transaction


@admin.register(BankAccount)
class BankAccountAdmin(admin.ModelAdmin):
    """
    Admin configuration for BankAccount.

    The cached balance and the ledger balance are shown side by side so
    drift is visible; correcting it is the balance audit's job.
    """

    list_display = [
        "name",
        "bank_name",
        "balance_display",
        "allow_overdraft",
        "is_active",
        "created_at",
    ]
    list_filter = ["is_active", "allow_overdraft", "bank_name"]
    search_fields = ["id", "name", "bank_name", "account_number"]
    readonly_fields = ["id", "balance_cents", "ledger_balance_display", "created_at", "updated_at"]
    ordering = ["name"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "name", "bank_name", "agency", "account_number"),
            },
        ),
        (
            "Configuration",
            {
                "fields": ("allow_overdraft", "is_active"),
            },
        ),
        (
            "Balance",
            {
                "fields": ("balance_cents", "ledger_balance_display"),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    @admin.display(description="Balance")
    def balance_display(self, obj: BankAccount) -> str:
        return str(obj.balance)

    @admin.display(description="Ledger balance")
    def ledger_balance_display(self, obj: BankAccount) -> str:
        """Sum of all transactions (one query)."""
        return str(obj.get_ledger_balance())


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """
    Admin configuration for Transaction.

    Transactions are append-only. Corrections go through new postings or
    the balance audit, never through editing rows.
    """

    list_display = [
        "date",
        "bank_account",
        "sequence",
        "transaction_type",
        "amount_display",
        "balance_after_display",
        "reference_type",
        "description",
    ]
    list_filter = ["transaction_type", "reference_type", "bank_account"]
    search_fields = ["id", "reference_id", "description", "transfer_group"]
    date_hierarchy = "date"
    ordering = ["bank_account", "-sequence"]

    @admin.display(description="Amount")
    def amount_display(self, obj: Transaction) -> str:
        return str(obj.amount)

    @admin.display(description="Balance after")
    def balance_after_display(self, obj: Transaction) -> str:
        return str(obj.balance_after)

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request) -> bool:
        """Postings go through BankLedgerService only."""
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False
