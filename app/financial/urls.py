"""
URL routing for financial app.

Routes:
    webhooks/payment-provider/ - Payment provider webhook (POST)
    customers/<id>/credit/ - Customer credit snapshot (GET)
    obligations/<uuid>/mark-paid/ - Manual payment override (POST)
    obligations/<uuid>/cancel/ - Cancel obligation (POST)
    receivables/batch-receive/ - Settle several receivables (POST)
    bank-accounts/<uuid>/transactions/ - Transaction list / posting (GET, POST)
    bank-accounts/transfer/ - Transfer between accounts (POST)
    audit/credit/ - Customer credit audit (POST)
    audit/balances/ - Bank balance audit (POST)
"""

from django.urls import path

from financial import views
from financial.webhooks.views import payment_provider_webhook

app_name = "financial"

urlpatterns = [
    # Provider webhook (shared secret, no session auth)
    path(
        "webhooks/payment-provider/",
        payment_provider_webhook,
        name="payment_provider_webhook",
    ),
    # Credit
    path(
        "customers/<int:customer_id>/credit/",
        views.CustomerCreditView.as_view(),
        name="customer_credit",
    ),
    # Obligations
    path(
        "obligations/<uuid:obligation_id>/mark-paid/",
        views.ObligationMarkPaidView.as_view(),
        name="obligation_mark_paid",
    ),
    path(
        "obligations/<uuid:obligation_id>/cancel/",
        views.ObligationCancelView.as_view(),
        name="obligation_cancel",
    ),
    path(
        "receivables/batch-receive/",
        views.ReceivableBatchReceiveView.as_view(),
        name="receivable_batch_receive",
    ),
    # Bank ledger
    path(
        "bank-accounts/transfer/",
        views.BankTransferView.as_view(),
        name="bank_transfer",
    ),
    path(
        "bank-accounts/<uuid:account_id>/transactions/",
        views.BankAccountTransactionsView.as_view(),
        name="bank_account_transactions",
    ),
    # Audit
    path("audit/credit/", views.CreditAuditView.as_view(), name="audit_credit"),
    path("audit/balances/", views.BalanceAuditView.as_view(), name="audit_balances"),
]
