from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone
import django_fsm
import uuid


OBLIGATION_STATUS_CHOICES = [
    ("pending", "Pending"),
    ("overdue", "Overdue"),
    ("paid", "Paid"),
    ("cancelled", "Cancelled"),
]

PAYMENT_METHOD_CHOICES = [
    ("pix", "PIX"),
    ("boleto", "Boleto"),
    ("cash", "Cash"),
    ("card", "Card"),
    ("bank_transfer", "Bank Transfer"),
    ("credit", "Store Credit"),
]


def timestamp_fields():
    return [
        ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
        ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
        ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
    ]


def obligation_fields():
    return [
        ("amount_cents", models.BigIntegerField(help_text="Amount owed in cents")),
        ("due_date", models.DateField(db_index=True, help_text="Date the payment is due (local business date)")),
        ("description", models.CharField(blank=True, default="", help_text="Free-text description shown to operators", max_length=255)),
        ("status", django_fsm.FSMField(choices=OBLIGATION_STATUS_CHOICES, db_index=True, default="pending", help_text="Current lifecycle state (managed by FSM)", max_length=50)),
        ("payment_method", models.CharField(blank=True, choices=PAYMENT_METHOD_CHOICES, default="", help_text="How the obligation was settled", max_length=20)),
        ("paid_amount_cents", models.BigIntegerField(blank=True, help_text="Amount actually received in cents (may be below amount on partial payment)", null=True)),
        ("paid_by", models.ForeignKey(blank=True, help_text="Administrator who recorded a manual receipt", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("sales", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        # =====================================================================
        # Bank ledger
        # =====================================================================
        migrations.CreateModel(
            name="BankAccount",
            fields=timestamp_fields() + [
                ("name", models.CharField(help_text="Display name", max_length=100)),
                ("bank_name", models.CharField(blank=True, default="", help_text="Bank or institution name", max_length=100)),
                ("agency", models.CharField(blank=True, default="", help_text="Branch (agência) number", max_length=20)),
                ("account_number", models.CharField(blank=True, default="", help_text="Account number", max_length=30)),
                ("balance_cents", models.BigIntegerField(default=0, help_text="Cached balance in cents (sum of transaction amounts)")),
                ("allow_overdraft", models.BooleanField(default=False, help_text="Whether debits may take the balance below zero")),
                ("is_active", models.BooleanField(db_index=True, default=True, help_text="Inactive accounts accept no postings")),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Transaction",
            fields=timestamp_fields() + [
                ("transaction_type", models.CharField(choices=[("income", "Income"), ("expense", "Expense"), ("transfer", "Transfer")], db_index=True, help_text="Type of posting", max_length=20)),
                ("amount_cents", models.BigIntegerField(help_text="Signed amount in cents (positive = money in)")),
                ("balance_after_cents", models.BigIntegerField(help_text="Running balance in cents after this posting")),
                ("sequence", models.PositiveBigIntegerField(help_text="Per-account insertion order")),
                ("date", models.DateField(db_index=True, default=django.utils.timezone.localdate, help_text="Business date of the posting")),
                ("description", models.CharField(blank=True, default="", help_text="Free-text description", max_length=255)),
                ("category", models.CharField(blank=True, default="", help_text="Income/expense category", max_length=100)),
                ("reference_type", models.CharField(blank=True, choices=[("boleto", "Boleto"), ("receivable", "Receivable"), ("bank_account", "Bank Account"), ("opening_balance", "Opening Balance"), ("manual", "Manual")], default="", help_text="Kind of entity referenced", max_length=30)),
                ("reference_id", models.CharField(blank=True, default="", help_text="Id of the referenced entity", max_length=64)),
                ("transfer_group", models.UUIDField(blank=True, db_index=True, help_text="Shared by both legs of a transfer", null=True)),
                ("bank_account", models.ForeignKey(help_text="Account this posting belongs to", on_delete=django.db.models.deletion.PROTECT, related_name="transactions", to="financial.bankaccount")),
                ("created_by", models.ForeignKey(blank=True, help_text="User who posted the transaction", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["bank_account", "sequence"],
                "constraints": [
                    models.UniqueConstraint(fields=("bank_account", "sequence"), name="transaction_unique_account_sequence"),
                ],
                "indexes": [
                    models.Index(fields=["reference_type", "reference_id"], name="transaction_reference_idx"),
                    models.Index(fields=["bank_account", "created_at"], name="txn_account_created_idx"),
                ],
            },
        ),
        # =====================================================================
        # Obligations
        # =====================================================================
        migrations.CreateModel(
            name="Boleto",
            fields=timestamp_fields() + obligation_fields() + [
                ("boleto_number", models.CharField(blank=True, default="", help_text="Printed boleto number / digitable line reference", max_length=50)),
                ("pix_payment_id", models.CharField(blank=True, help_text="Payment provider charge reference (unique when set)", max_length=255, null=True, unique=True)),
                ("paid_date", models.DateField(blank=True, help_text="Date the boleto was confirmed as paid", null=True)),
                ("customer", models.ForeignKey(help_text="Customer who owes this amount", on_delete=django.db.models.deletion.PROTECT, related_name="boletos", to="sales.customer")),
                ("order", models.ForeignKey(blank=True, help_text="Order that originated this boleto", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="boletos", to="sales.order")),
            ],
            options={
                "ordering": ["due_date", "created_at"],
                "abstract": False,
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount_cents__gt", 0)), name="boleto_amount_positive"),
                ],
                "indexes": [
                    models.Index(fields=["customer", "status"], name="boleto_customer_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Receivable",
            fields=timestamp_fields() + obligation_fields() + [
                ("payment_date", models.DateField(blank=True, help_text="Date the receivable was settled", null=True)),
                ("boleto", models.ForeignKey(blank=True, help_text="Boleto representing this receivable (excluded from debt while active)", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="receivables", to="financial.boleto")),
                ("customer", models.ForeignKey(help_text="Customer who owes this amount", on_delete=django.db.models.deletion.PROTECT, related_name="receivables", to="sales.customer")),
                ("order", models.ForeignKey(blank=True, help_text="Order that originated this receivable", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="receivables", to="sales.order")),
                ("remainder_of", models.ForeignKey(blank=True, help_text="Receivable whose partial payment created this remainder", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="remainders", to="financial.receivable")),
            ],
            options={
                "ordering": ["due_date", "created_at"],
                "abstract": False,
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount_cents__gt", 0)), name="receivable_amount_positive"),
                ],
                "indexes": [
                    models.Index(fields=["customer", "status"], name="receivable_customer_status_idx"),
                ],
            },
        ),
        # =====================================================================
        # Webhook journal
        # =====================================================================
        migrations.CreateModel(
            name="ProviderWebhookEvent",
            fields=timestamp_fields() + [
                ("event_id", models.CharField(help_text="Provider event id (or body hash) used to group redeliveries", max_length=255, unique=True)),
                ("event_type", models.CharField(blank=True, db_index=True, default="", help_text="Provider event type", max_length=100)),
                ("provider_reference", models.CharField(blank=True, db_index=True, default="", help_text="Provider charge reference (matches Boleto.pix_payment_id)", max_length=255)),
                ("provider_status", models.CharField(blank=True, default="", help_text="Raw provider status", max_length=50)),
                ("payload", models.JSONField(help_text="Full webhook body (JSON)")),
                ("status", models.CharField(choices=[("pending", "Pending"), ("processed", "Processed"), ("ignored", "Ignored"), ("failed", "Failed")], db_index=True, default="pending", help_text="Current processing status", max_length=20)),
                ("outcome", models.CharField(blank=True, default="", help_text="Reconciliation outcome of the last attempt", max_length=30)),
                ("attempts", models.PositiveIntegerField(default=0, help_text="Number of deliveries handled")),
                ("processed_at", models.DateTimeField(blank=True, help_text="When the event was last handled successfully", null=True)),
                ("error_message", models.TextField(blank=True, default="", help_text="Error details if the last attempt failed")),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        # =====================================================================
        # Audit
        # =====================================================================
        migrations.CreateModel(
            name="AuditRun",
            fields=timestamp_fields() + [
                ("kind", models.CharField(choices=[("customer_credit", "Customer Credit"), ("account_balance", "Account Balance")], db_index=True, help_text="What this run compared", max_length=30)),
                ("status", models.CharField(choices=[("running", "Running"), ("completed", "Completed"), ("failed", "Failed")], db_index=True, default="running", help_text="Current status of this run", max_length=20)),
                ("started_at", models.DateTimeField(help_text="When this run started")),
                ("completed_at", models.DateTimeField(blank=True, help_text="When this run completed (or failed)", null=True)),
                ("entities_checked", models.PositiveIntegerField(default=0, help_text="Number of customers or accounts examined")),
                ("discrepancies_found", models.PositiveIntegerField(default=0, help_text="Entities beyond tolerance at apply time")),
                ("corrections_applied", models.PositiveIntegerField(default=0, help_text="Entities whose cached value was rewritten")),
                ("error_message", models.TextField(blank=True, default="", help_text="Error message if the run failed")),
                ("performed_by", models.ForeignKey(blank=True, help_text="Operator who confirmed the run", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-started_at"],
            },
        ),
        migrations.CreateModel(
            name="DriftCorrection",
            fields=timestamp_fields() + [
                ("before_cents", models.BigIntegerField(help_text="Cached value before the correction")),
                ("after_cents", models.BigIntegerField(help_text="Recomputed value written by the correction")),
                ("corrected_rows", models.PositiveIntegerField(default=0, help_text="Transactions whose balance_after was rewritten")),
                ("details", models.JSONField(blank=True, default=dict, help_text="Contributing obligation counts or other context")),
                ("bank_account", models.ForeignKey(blank=True, help_text="Bank account whose balance was corrected", null=True, on_delete=django.db.models.deletion.CASCADE, related_name="balance_corrections", to="financial.bankaccount")),
                ("customer", models.ForeignKey(blank=True, help_text="Customer whose available credit was corrected", null=True, on_delete=django.db.models.deletion.CASCADE, related_name="credit_corrections", to="sales.customer")),
                ("run", models.ForeignKey(help_text="Run that made this correction", on_delete=django.db.models.deletion.CASCADE, related_name="corrections", to="financial.auditrun")),
            ],
            options={
                "ordering": ["created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("bank_account__isnull", True), ("customer__isnull", False)),
                            models.Q(("bank_account__isnull", False), ("customer__isnull", True)),
                            _connector="OR",
                        ),
                        name="drift_correction_single_target",
                    ),
                ],
            },
        ),
    ]
