"""Provider adapters (freee, QuickBooks Online, Xero)."""

from .freee import FreeeAdapter
from .quickbooks import QuickBooksAdapter
from .xero import XeroAdapter

ADAPTER_CLASSES = {
    "freee": FreeeAdapter,
    "quickbooks": QuickBooksAdapter,
    "xero": XeroAdapter,
}

__all__ = [
    "ADAPTER_CLASSES",
    "FreeeAdapter",
    "QuickBooksAdapter",
    "XeroAdapter",
]
