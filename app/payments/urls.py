"""
URL configuration for the payments app.

Routes:
    - POST webhooks/<gateway>/ - Provider webhook endpoints
    - Razorpay checkout, subscription, history and admin endpoints

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("payments/", include("payments.urls")),
    ]
"""

from django.urls import path

from payments import views
from payments.webhooks.views import paystack_webhook, razorpay_webhook, stripe_webhook

app_name = "payments"

urlpatterns = [
    # Webhook endpoints
    path("webhooks/razorpay/", razorpay_webhook, name="razorpay-webhook"),
    path("webhooks/stripe/", stripe_webhook, name="stripe-webhook"),
    path("webhooks/paystack/", paystack_webhook, name="paystack-webhook"),
    # Razorpay checkout
    path("razorpay/subscriptions/", views.CreateSubscriptionView.as_view(), name="razorpay-create-subscription"),
    path(
        "razorpay/subscriptions/verify/",
        views.VerifySubscriptionView.as_view(),
        name="razorpay-verify-subscription",
    ),
    path("razorpay/orders/", views.CreateOrderView.as_view(), name="razorpay-create-order"),
    path("razorpay/orders/verify/", views.VerifyOrderView.as_view(), name="razorpay-verify-order"),
    # Subscription and history
    path("subscription/", views.SubscriptionView.as_view(), name="subscription"),
    path("subscription/cancel/", views.CancelSubscriptionView.as_view(), name="subscription-cancel"),
    path("transactions/", views.TransactionListView.as_view(), name="transactions"),
    # Admin
    path("admin/refunds/", views.AdminRefundView.as_view(), name="admin-refund"),
    path("admin/gateways/", views.AdminGatewayStatusView.as_view(), name="admin-gateways"),
]
