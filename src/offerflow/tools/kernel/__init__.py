"""Kernel-level service clients."""

from .france_travail import OfferSearchClient, TokenCache
from .google_auth import get_google_access_token
from .google_sheets_store import GoogleSheetsRowStore

__all__ = [
    "GoogleSheetsRowStore",
    "OfferSearchClient",
    "TokenCache",
    "get_google_access_token",
]
