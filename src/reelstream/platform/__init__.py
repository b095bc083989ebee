"""
ReelStream platform services.

Billing backend for the streaming product: subscriptions, metered usage,
tax, discounts, credits, invoicing and the plan-change pipeline.
"""

__version__ = "1.0.0"
