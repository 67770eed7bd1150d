import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="CreditPackage",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=100)),
                ("credits", models.PositiveIntegerField()),
                ("price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("currency", models.CharField(default="INR", max_length=3)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "ordering": ["price"],
                "abstract": False,
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("credits__gt", 0)), name="credit_package_credits_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="GatewaySetting",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("gateway", models.CharField(choices=[("razorpay", "Razorpay"), ("stripe", "Stripe"), ("paystack", "Paystack")], max_length=20)),
                (
                    "key",
                    models.CharField(
                        choices=[
                            ("enabled", "Enabled"),
                            ("webhook_secret", "Webhook Secret"),
                            ("key_id", "Key ID"),
                            ("key_secret", "Key Secret"),
                            ("secret_key", "Secret Key"),
                            ("currency", "Currency"),
                        ],
                        max_length=40,
                    ),
                ),
                ("value", models.TextField(blank=True)),
            ],
            options={
                "ordering": ["gateway", "key"],
                "abstract": False,
                "constraints": [
                    models.UniqueConstraint(fields=("gateway", "key"), name="uniq_gateway_setting"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Plan",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=50, unique=True)),
                ("display_name", models.CharField(max_length=100)),
                ("monthly_price", models.DecimalField(decimal_places=2, default="0", max_digits=12)),
                ("yearly_price", models.DecimalField(decimal_places=2, default="0", max_digits=12)),
                ("currency", models.CharField(default="INR", max_length=3)),
                ("included_credits", models.PositiveIntegerField(default=0)),
                ("razorpay_plan_id", models.CharField(blank=True, max_length=255)),
                ("razorpay_yearly_plan_id", models.CharField(blank=True, max_length=255)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "ordering": ["monthly_price"],
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="WebhookRetryRecord",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("gateway", models.CharField(choices=[("razorpay", "Razorpay"), ("stripe", "Stripe"), ("paystack", "Paystack")], max_length=20)),
                ("event_type", models.CharField(max_length=100)),
                ("external_event_id", models.CharField(max_length=255)),
                ("raw_payload", models.JSONField()),
                ("last_error", models.TextField(blank=True)),
                ("error_history", models.JSONField(blank=True, default=list)),
                ("attempt_count", models.PositiveIntegerField(default=0)),
                ("next_attempt_at", models.DateTimeField(db_index=True)),
                ("expires_at", models.DateTimeField()),
                ("is_dead_letter", models.BooleanField(db_index=True, default=False)),
                ("dead_lettered_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "verbose_name": "Webhook Retry",
                "verbose_name_plural": "Webhook Retries",
                "ordering": ["next_attempt_at"],
                "abstract": False,
                "constraints": [
                    models.UniqueConstraint(fields=("gateway", "external_event_id"), name="uniq_webhook_retry_event"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[("active", "Active"), ("past_due", "Past Due"), ("cancelled", "Cancelled")],
                        db_index=True,
                        default="active",
                        help_text="Current state of the subscription (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("billing_period", models.CharField(choices=[("monthly", "Monthly"), ("yearly", "Yearly")], default="monthly", max_length=10)),
                ("current_period_start", models.DateTimeField(help_text="Start of current billing period")),
                ("current_period_end", models.DateTimeField(help_text="End of current billing period")),
                ("razorpay_subscription_id", models.CharField(blank=True, help_text="Razorpay subscription id (sub_xxx)", max_length=255, null=True, unique=True)),
                ("stripe_subscription_id", models.CharField(blank=True, help_text="Stripe subscription id (sub_xxx)", max_length=255, null=True, unique=True)),
                ("paystack_subscription_code", models.CharField(blank=True, help_text="Paystack subscription code (SUB_xxx)", max_length=255, null=True, unique=True)),
                ("cancel_at_period_end", models.BooleanField(default=False, help_text="Whether the subscription will cancel at period end")),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("version", models.PositiveIntegerField(default=1, help_text="Version for optimistic locking - incremented on each save")),
                (
                    "plan",
                    models.ForeignKey(
                        help_text="Plan currently subscribed to",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="subscriptions",
                        to="payments.plan",
                    ),
                ),
                (
                    "user",
                    models.OneToOneField(
                        help_text="User owning this subscription",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="subscription",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Subscription",
                "verbose_name_plural": "Subscriptions",
                "ordering": ["-created_at"],
                "abstract": False,
                "indexes": [
                    models.Index(fields=["status", "current_period_end"], name="subscription_status_end_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("razorpay_subscription_id__isnull", False), ("stripe_subscription_id__isnull", False), _negated=True),
                            models.Q(("razorpay_subscription_id__isnull", False), ("paystack_subscription_code__isnull", False), _negated=True),
                            models.Q(("stripe_subscription_id__isnull", False), ("paystack_subscription_code__isnull", False), _negated=True),
                        ),
                        name="subscription_single_gateway_id",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentTransaction",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("type", models.CharField(choices=[("subscription", "Subscription"), ("credits", "Credits")], max_length=20)),
                ("gateway", models.CharField(choices=[("razorpay", "Razorpay"), ("stripe", "Stripe"), ("paystack", "Paystack")], max_length=20)),
                ("gateway_transaction_id", models.CharField(help_text="Provider payment id (pay_xxx, pi_xxx, Paystack reference)", max_length=255)),
                ("gateway_subscription_id", models.CharField(blank=True, max_length=255, null=True)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("currency", models.CharField(max_length=3)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[("completed", "Completed"), ("refunded", "Refunded"), ("disputed", "Disputed")],
                        db_index=True,
                        default="completed",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("credits_awarded", models.PositiveIntegerField(blank=True, null=True)),
                ("billing_period", models.CharField(blank=True, choices=[("monthly", "Monthly"), ("yearly", "Yearly")], max_length=10)),
                ("description", models.CharField(blank=True, max_length=255)),
                ("completed_at", models.DateTimeField()),
                (
                    "credit_package",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="payments.creditpackage",
                    ),
                ),
                (
                    "plan",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="payments.plan",
                    ),
                ),
                (
                    "subscription",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="transactions",
                        to="payments.subscription",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment_transactions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment Transaction",
                "verbose_name_plural": "Payment Transactions",
                "ordering": ["-created_at"],
                "abstract": False,
                "indexes": [
                    models.Index(fields=["user", "-created_at"], name="transaction_user_created_idx"),
                    models.Index(fields=["gateway_subscription_id"], name="transaction_gateway_sub_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("gateway", "gateway_transaction_id"), name="uniq_gateway_transaction"),
                    models.CheckConstraint(condition=models.Q(("amount__gte", 0)), name="transaction_amount_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Refund",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("currency", models.CharField(max_length=3)),
                ("gateway", models.CharField(choices=[("razorpay", "Razorpay"), ("stripe", "Stripe"), ("paystack", "Paystack")], max_length=20)),
                ("gateway_refund_id", models.CharField(blank=True, max_length=255, null=True)),
                (
                    "reason",
                    models.CharField(
                        choices=[
                            ("gateway_refund", "Gateway Refund"),
                            ("chargeback", "Chargeback"),
                            ("admin_initiated", "Admin Initiated"),
                        ],
                        max_length=20,
                    ),
                ),
                ("initiated_by", models.CharField(default="gateway", max_length=255)),
                (
                    "state",
                    models.CharField(
                        choices=[("pending", "Pending"), ("completed", "Completed")],
                        db_index=True,
                        default="completed",
                        max_length=20,
                    ),
                ),
                ("credits_reversed", models.PositiveIntegerField(blank=True, null=True)),
                (
                    "transaction",
                    models.OneToOneField(
                        help_text="Transaction being refunded (at most one refund each)",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refund",
                        to="payments.paymenttransaction",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Refund",
                "verbose_name_plural": "Refunds",
                "ordering": ["-created_at"],
                "abstract": False,
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount__gte", 0)), name="refund_amount_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="AuditEntry",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("gateway", models.CharField(blank=True, choices=[("razorpay", "Razorpay"), ("stripe", "Stripe"), ("paystack", "Paystack")], max_length=20)),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("payment_initiated", "Payment Initiated"),
                            ("payment_completed", "Payment Completed"),
                            ("payment_failed", "Payment Failed"),
                            ("subscription_created", "Subscription Created"),
                            ("subscription_renewed", "Subscription Renewed"),
                            ("subscription_cancelled", "Subscription Cancelled"),
                            ("refund_initiated", "Refund Initiated"),
                            ("refund_completed", "Refund Completed"),
                            ("credits_awarded", "Credits Awarded"),
                            ("dispute_opened", "Dispute Opened"),
                            ("webhook_received", "Webhook Received"),
                            ("webhook_rejected", "Webhook Rejected"),
                            ("duplicate_event_ignored", "Duplicate Event Ignored"),
                            ("event_unhandled", "Event Unhandled"),
                            ("event_invalid", "Event Invalid"),
                        ],
                        db_index=True,
                        max_length=40,
                    ),
                ),
                ("amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("currency", models.CharField(blank=True, max_length=3)),
                ("external_event_id", models.CharField(blank=True, db_index=True, max_length=255)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                (
                    "transaction",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="audit_entries",
                        to="payments.paymenttransaction",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        db_constraint=False,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment_audit_entries",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Audit Entry",
                "verbose_name_plural": "Audit Entries",
                "ordering": ["-created_at"],
                "abstract": False,
                "indexes": [
                    models.Index(fields=["user", "-created_at"], name="audit_user_created_idx"),
                    models.Index(fields=["gateway", "action"], name="audit_gateway_action_idx"),
                ],
            },
        ),
    ]
