"""
URL configuration for the Django application.

The `urlpatterns` list routes URLs to views. This is the root URL configuration
that includes all app-specific routes.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/payments/              - Payment endpoints
        webhooks/razorpay/         - Razorpay webhook endpoint (POST)
        webhooks/stripe/           - Stripe webhook endpoint (POST)
        webhooks/paystack/         - Paystack webhook endpoint (POST)
        razorpay/subscriptions/    - Create Razorpay subscription
        razorpay/subscriptions/verify/ - Verify subscription checkout
        razorpay/orders/           - Create credit order
        razorpay/orders/verify/    - Verify credit order checkout
        subscription/              - Current subscription
        subscription/cancel/       - Cancel at period end
        transactions/              - Transaction history
        admin/refunds/             - Admin refund (staff)
        admin/gateways/            - Gateway status (staff)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # Payments
    path("payments/", include("payments.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Payments Admin"
admin.site.site_title = "Payments Admin Portal"
admin.site.index_title = "Payments, subscriptions and webhook reconciliation"
