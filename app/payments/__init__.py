"""
Payments app: multi-gateway payment event reconciliation.

This app handles:
- Provider webhooks (signature check, normalization, idempotent apply)
- Subscription lifecycle (activate, renew, past due, cancel)
- Credit purchases, refunds and disputes
- Retry queue and dead letters for failed deliveries
- Razorpay checkout (create and verify subscriptions and orders)

Related apps:
    - authentication: User model carrying credits and plan type
    - core: BaseService, ServiceResult, application errors

Usage:
    from payments.webhooks import WebhookProcessor

    outcome = WebhookProcessor.process_payload(Gateway.RAZORPAY, payload, event_id)
"""
