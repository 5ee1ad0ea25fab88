"""Billing document persistence."""

from core.store.base import BillingStore, DocumentKind

__all__ = ["BillingStore", "DocumentKind"]
