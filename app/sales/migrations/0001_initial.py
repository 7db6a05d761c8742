from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Customer",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("name", models.CharField(help_text="Customer (business) name", max_length=200)),
                ("document", models.CharField(blank=True, db_index=True, default="", help_text="CNPJ or CPF, digits only", max_length=20)),
                ("email", models.EmailField(blank=True, default="", help_text="Contact e-mail for payment notifications", max_length=254)),
                ("phone", models.CharField(blank=True, default="", help_text="Contact phone for payment notifications", max_length=20)),
                ("credit_limit_cents", models.BigIntegerField(default=0, help_text="Configured credit ceiling in cents (>= 0)")),
                ("available_credit_cents", models.BigIntegerField(default=0, help_text="Cached available credit in cents (derived, see CreditService)")),
                ("is_active", models.BooleanField(db_index=True, default=True, help_text="Inactive customers are skipped by the credit audit")),
            ],
            options={
                "ordering": ["name"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("credit_limit_cents__gte", 0)), name="customer_credit_limit_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("order_number", models.CharField(help_text="Human-facing order number", max_length=30, unique=True)),
                ("total_cents", models.BigIntegerField(help_text="Order total in cents")),
                ("payment_method", models.CharField(choices=[("pix", "PIX"), ("boleto", "Boleto"), ("cash", "Cash"), ("card", "Card"), ("bank_transfer", "Bank Transfer"), ("credit", "Store Credit")], default="boleto", help_text="How the customer will pay", max_length=20)),
                ("payment_status", models.CharField(choices=[("pending", "Pending"), ("paid", "Paid"), ("cancelled", "Cancelled")], db_index=True, default="pending", help_text="Set to paid by the payment reconciler or a manual override", max_length=20)),
                ("paid_at", models.DateTimeField(blank=True, help_text="When the order was confirmed as paid", null=True)),
                ("customer", models.ForeignKey(help_text="Customer who placed the order", on_delete=django.db.models.deletion.PROTECT, related_name="orders", to="sales.customer")),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]
