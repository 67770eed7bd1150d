"""
Payment admin configuration.

Registers the payment domain models with the Django admin. Financial
records (transactions, refunds, audit entries) are read-only here; state
changes go through the service layer.
"""

from django.contrib import admin, messages

from payments.models import (
    AuditEntry,
    CreditPackage,
    GatewaySetting,
    PaymentTransaction,
    Plan,
    Refund,
    Subscription,
    WebhookRetryRecord,
)
from payments.services import RetryQueueService

__all__ = [
    "AuditEntryAdmin",
    "CreditPackageAdmin",
    "GatewaySettingAdmin",
    "PaymentTransactionAdmin",
    "PlanAdmin",
    "RefundAdmin",
    "SubscriptionAdmin",
    "WebhookRetryRecordAdmin",
]


class ReadOnlyAdminMixin:
    """Admin that can list and view but never add, change or delete."""

    def has_add_permission(self, request, obj=None) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


# =============================================================================
# Catalog and configuration
# =============================================================================


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    list_display = [
        "name",
        "display_name",
        "monthly_price",
        "yearly_price",
        "currency",
        "included_credits",
        "is_active",
    ]
    list_filter = ["is_active", "currency"]
    search_fields = ["name", "display_name", "razorpay_plan_id", "razorpay_yearly_plan_id"]
    readonly_fields = ["id", "created_at", "updated_at"]


@admin.register(CreditPackage)
class CreditPackageAdmin(admin.ModelAdmin):
    list_display = ["name", "credits", "price", "currency", "is_active"]
    list_filter = ["is_active", "currency"]
    search_fields = ["name"]
    readonly_fields = ["id", "created_at", "updated_at"]


@admin.register(GatewaySetting)
class GatewaySettingAdmin(admin.ModelAdmin):
    """
    Admin configuration for GatewaySetting.

    Values saved here override the environment defaults. Secrets are
    never shown in the list view.
    """

    list_display = ["gateway", "key", "value_display", "updated_at"]
    list_filter = ["gateway", "key"]
    ordering = ["gateway", "key"]

    def value_display(self, obj: GatewaySetting) -> str:
        if obj.key in ("enabled", "currency"):
            return obj.value
        return "********" if obj.value else ""

    value_display.short_description = "Value"


# =============================================================================
# Subscriptions and transactions
# =============================================================================


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """
    Admin configuration for Subscription.

    State is managed by webhooks; the admin only exposes it.
    """

    list_display = [
        "id",
        "user",
        "plan",
        "status",
        "billing_period",
        "current_period_end",
        "cancel_at_period_end",
        "gateway",
    ]
    list_filter = ["status", "billing_period", "cancel_at_period_end"]
    search_fields = [
        "id",
        "user__email",
        "razorpay_subscription_id",
        "stripe_subscription_id",
        "paystack_subscription_code",
    ]
    readonly_fields = [
        "id",
        "user",
        "plan",
        "status",
        "billing_period",
        "current_period_start",
        "current_period_end",
        "razorpay_subscription_id",
        "stripe_subscription_id",
        "paystack_subscription_code",
        "cancel_at_period_end",
        "cancelled_at",
        "version",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(PaymentTransaction)
class PaymentTransactionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = [
        "id",
        "user",
        "type",
        "gateway",
        "gateway_transaction_id",
        "amount_display",
        "status",
        "credits_awarded",
        "completed_at",
    ]
    list_filter = ["type", "gateway", "status", "currency"]
    search_fields = ["id", "gateway_transaction_id", "gateway_subscription_id", "user__email"]
    date_hierarchy = "completed_at"
    ordering = ["-completed_at"]

    def amount_display(self, obj: PaymentTransaction) -> str:
        return f"{obj.amount:.2f} {obj.currency}"

    amount_display.short_description = "Amount"


@admin.register(Refund)
class RefundAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = [
        "id",
        "transaction",
        "user",
        "amount_display",
        "reason",
        "state",
        "initiated_by",
        "credits_reversed",
        "created_at",
    ]
    list_filter = ["reason", "state", "gateway"]
    search_fields = ["id", "gateway_refund_id", "transaction__gateway_transaction_id", "user__email"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def amount_display(self, obj: Refund) -> str:
        return f"{obj.amount:.2f} {obj.currency}"

    amount_display.short_description = "Amount"


# =============================================================================
# Webhook retry queue and audit log
# =============================================================================


@admin.register(WebhookRetryRecord)
class WebhookRetryRecordAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookRetryRecord.

    Dead letters can be put back on the queue with the
    "Requeue selected dead letters" action.
    """

    list_display = [
        "id",
        "gateway",
        "event_type",
        "external_event_id",
        "attempt_count",
        "next_attempt_at",
        "expires_at",
        "is_dead_letter",
    ]
    list_filter = ["gateway", "is_dead_letter", "event_type"]
    search_fields = ["id", "external_event_id", "event_type"]
    readonly_fields = [
        "id",
        "gateway",
        "event_type",
        "external_event_id",
        "raw_payload",
        "last_error",
        "error_history",
        "attempt_count",
        "next_attempt_at",
        "expires_at",
        "is_dead_letter",
        "dead_lettered_at",
        "created_at",
        "updated_at",
    ]
    ordering = ["next_attempt_at"]
    actions = ["requeue_dead_letters"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "gateway", "event_type", "external_event_id"),
            },
        ),
        (
            "Schedule",
            {
                "fields": ("attempt_count", "next_attempt_at", "expires_at", "is_dead_letter", "dead_lettered_at"),
            },
        ),
        (
            "Errors",
            {
                "fields": ("last_error", "error_history"),
                "classes": ("collapse",),
            },
        ),
        (
            "Payload",
            {
                "fields": ("raw_payload",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def has_add_permission(self, request) -> bool:
        return False

    @admin.action(description="Requeue selected dead letters")
    def requeue_dead_letters(self, request, queryset):
        requeued = 0
        for record in queryset.filter(is_dead_letter=True):
            if RetryQueueService.requeue_dead_letter(record.pk):
                requeued += 1
        self.message_user(request, f"{requeued} dead letter(s) requeued.", messages.SUCCESS)


@admin.register(AuditEntry)
class AuditEntryAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = [
        "created_at",
        "action",
        "gateway",
        "user_id",
        "transaction",
        "amount",
        "currency",
        "external_event_id",
    ]
    list_filter = ["action", "gateway"]
    search_fields = ["external_event_id", "transaction__gateway_transaction_id"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
