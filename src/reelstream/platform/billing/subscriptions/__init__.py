"""Subscription aggregate, proration, add-on migration and lifecycle use cases."""
