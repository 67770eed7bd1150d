"""
Authentication application.

Provides the email-based custom user model. Besides identity fields the user
row carries the account state that the payments engine reconciles:

    - credits: prepaid credit balance (mutated only by payments.ledger)
    - plan_type / plan_expires_at: effective membership tier
    - is_active: cleared when a chargeback suspends the account

Usage:
    from authentication.models import User
"""
