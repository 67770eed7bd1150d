"""
DRF views for payments app.

This module provides API views for:
- Razorpay checkout (create/verify subscription, create/verify credit order)
- Subscription display and cancellation
- Transaction history
- Admin refunds and gateway status

Webhook endpoints live in payments.webhooks.views.

Endpoints:
    POST /api/v1/payments/razorpay/subscriptions/ - Create subscription
    POST /api/v1/payments/razorpay/subscriptions/verify/ - Verify subscription payment
    POST /api/v1/payments/razorpay/orders/ - Create credit order
    POST /api/v1/payments/razorpay/orders/verify/ - Verify credit order payment
    GET  /api/v1/payments/subscription/ - Current subscription
    POST /api/v1/payments/subscription/cancel/ - Cancel at period end
    GET  /api/v1/payments/transactions/ - Transaction history
    POST /api/v1/payments/admin/refunds/ - Admin refund (staff)
    GET  /api/v1/payments/admin/gateways/ - Gateway status (staff)

Error responses use BaseApplicationError.to_dict():
    {"error": "...", "error_code": "...", "details": {...}}
"""

from __future__ import annotations

import logging

from rest_framework import generics, status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from drf_spectacular.utils import OpenApiResponse, extend_schema

from core.exceptions import BaseApplicationError, NotFoundError, PermissionDeniedError

from payments.config import GatewayConfigResolver
from payments.exceptions import (
    GatewayError,
    GatewayNotConfiguredError,
    TransientGatewayError,
)
from payments.models import PaymentTransaction, Subscription
from payments.serializers import (
    AdminRefundSerializer,
    CreateOrderSerializer,
    CreateSubscriptionSerializer,
    GatewayStatusSerializer,
    RefundSerializer,
    SubscriptionSerializer,
    TransactionSerializer,
    VerifyOrderSerializer,
    VerifySubscriptionSerializer,
)
from payments.services import RazorpayCheckoutService, RefundService, SubscriptionService

logger = logging.getLogger(__name__)


# Status code per ServiceResult error code; anything else is a 400
FAILURE_STATUS = {
    "TRANSACTION_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "NO_ACTIVE_SUBSCRIPTION": status.HTTP_404_NOT_FOUND,
    "MEMBERSHIP_REQUIRED": status.HTTP_403_FORBIDDEN,
    "REFUND_NOT_ALLOWED": status.HTTP_409_CONFLICT,
}


def error_response(exc: BaseApplicationError) -> Response:
    """Map an application error to an HTTP response."""
    if isinstance(exc, (GatewayNotConfiguredError, TransientGatewayError)):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(exc, GatewayError):
        code = status.HTTP_502_BAD_GATEWAY
    elif isinstance(exc, PermissionDeniedError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    else:
        code = status.HTTP_400_BAD_REQUEST
    return Response(exc.to_dict(), status=code)


def failure_response(result) -> Response:
    return Response(
        result.to_response(),
        status=FAILURE_STATUS.get(result.error_code, status.HTTP_400_BAD_REQUEST),
    )


# =============================================================================
# Razorpay checkout
# =============================================================================


class CreateSubscriptionView(APIView):
    """
    Create a Razorpay subscription for the current user.

    POST /api/v1/payments/razorpay/subscriptions/

    Request body:
        {"plan_id": "pro", "billing_period": "monthly"}

    Returns:
        subscription_id and key_id for Razorpay Checkout
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        request=CreateSubscriptionSerializer,
        responses={201: OpenApiResponse(description="Subscription created")},
        tags=["Payments - Checkout"],
    )
    def post(self, request):
        serializer = CreateSubscriptionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            result = RazorpayCheckoutService.create_subscription(
                request.user,
                serializer.validated_data["plan_id"],
                serializer.validated_data["billing_period"],
            )
        except BaseApplicationError as e:
            return error_response(e)
        if not result:
            return failure_response(result)
        return Response(result.data, status=status.HTTP_201_CREATED)


class VerifySubscriptionView(APIView):
    """
    Confirm a subscription payment from the browser callback.

    POST /api/v1/payments/razorpay/subscriptions/verify/

    Idempotent: if the webhook already activated the subscription, the
    recorded transaction is returned.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        request=VerifySubscriptionSerializer,
        responses={200: TransactionSerializer},
        tags=["Payments - Checkout"],
    )
    def post(self, request):
        serializer = VerifySubscriptionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            result = RazorpayCheckoutService.verify_subscription(
                request.user,
                payment_id=data["razorpay_payment_id"],
                subscription_id=data["razorpay_subscription_id"],
                signature=data["razorpay_signature"],
            )
        except BaseApplicationError as e:
            return error_response(e)
        if not result:
            return failure_response(result)
        return Response({"verified": True, "transaction": TransactionSerializer(result.data).data})


class CreateOrderView(APIView):
    """
    Create a Razorpay order for a credit package.

    POST /api/v1/payments/razorpay/orders/

    Request body:
        {"package_id": "<uuid>"}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        request=CreateOrderSerializer,
        responses={201: OpenApiResponse(description="Order created")},
        tags=["Payments - Checkout"],
    )
    def post(self, request):
        serializer = CreateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            result = RazorpayCheckoutService.create_order(request.user, serializer.validated_data["package_id"])
        except BaseApplicationError as e:
            return error_response(e)
        if not result:
            return failure_response(result)
        return Response(result.data, status=status.HTTP_201_CREATED)


class VerifyOrderView(APIView):
    """
    Confirm a credit order payment from the browser callback.

    POST /api/v1/payments/razorpay/orders/verify/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        request=VerifyOrderSerializer,
        responses={200: TransactionSerializer},
        tags=["Payments - Checkout"],
    )
    def post(self, request):
        serializer = VerifyOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            result = RazorpayCheckoutService.verify_order(
                request.user,
                order_id=data["razorpay_order_id"],
                payment_id=data["razorpay_payment_id"],
                signature=data["razorpay_signature"],
            )
        except BaseApplicationError as e:
            return error_response(e)
        if not result:
            return failure_response(result)
        return Response({"verified": True, "transaction": TransactionSerializer(result.data).data})


# =============================================================================
# Subscription and history
# =============================================================================


class SubscriptionView(APIView):
    """
    Get current user's subscription.

    GET /api/v1/payments/subscription/

    Returns:
        Subscription details or 404 if no subscription
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(responses={200: SubscriptionSerializer}, tags=["Payments - Subscription"])
    def get(self, request):
        subscription = Subscription.objects.select_related("plan").filter(user=request.user).first()
        if subscription is None:
            return Response({"detail": "No subscription found"}, status=status.HTTP_404_NOT_FOUND)
        return Response(SubscriptionSerializer(subscription).data)


class CancelSubscriptionView(APIView):
    """
    Stop the current user's subscription from renewing.

    POST /api/v1/payments/subscription/cancel/

    The subscription stays active until the end of the paid period.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(request=None, responses={200: SubscriptionSerializer}, tags=["Payments - Subscription"])
    def post(self, request):
        try:
            result = SubscriptionService.cancel_at_period_end(request.user)
        except BaseApplicationError as e:
            return error_response(e)
        if not result:
            return failure_response(result)
        return Response(SubscriptionSerializer(result.data).data)


class TransactionListView(generics.ListAPIView):
    """
    List the current user's transactions, newest first.

    GET /api/v1/payments/transactions/
    """

    permission_classes = [IsAuthenticated]
    serializer_class = TransactionSerializer

    def get_queryset(self):
        return PaymentTransaction.objects.filter(user=self.request.user).order_by("-completed_at")


# =============================================================================
# Admin
# =============================================================================


class AdminRefundView(APIView):
    """
    Refund a transaction in full.

    POST /api/v1/payments/admin/refunds/

    Calls the provider synchronously. Provider outages return 503 with a
    retryable error code; the admin can simply retry.
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        request=AdminRefundSerializer,
        responses={
            201: RefundSerializer,
            404: OpenApiResponse(description="Transaction not found"),
            409: OpenApiResponse(description="Transaction not refundable"),
            502: OpenApiResponse(description="Provider rejected the refund"),
            503: OpenApiResponse(description="Provider unavailable"),
        },
        tags=["Payments - Admin"],
    )
    def post(self, request):
        serializer = AdminRefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            result = RefundService.admin_refund(
                serializer.validated_data["transaction_id"],
                request.user,
                reason=serializer.validated_data["reason"],
            )
        except BaseApplicationError as e:
            logger.warning(
                "Admin refund failed",
                extra={
                    "transaction_id": str(serializer.validated_data["transaction_id"]),
                    "error_code": e.error_code,
                },
            )
            return error_response(e)
        if not result:
            return failure_response(result)
        return Response(RefundSerializer(result.data.refund).data, status=status.HTTP_201_CREATED)


class AdminGatewayStatusView(APIView):
    """
    Enabled/configured flags and last webhook time per gateway.

    GET /api/v1/payments/admin/gateways/
    """

    permission_classes = [IsAdminUser]

    @extend_schema(responses={200: GatewayStatusSerializer(many=True)}, tags=["Payments - Admin"])
    def get(self, request):
        return Response(GatewayStatusSerializer(GatewayConfigResolver.status(), many=True).data)
