"""External service adapters for offerflow."""

from .kernel import GoogleSheetsRowStore, OfferSearchClient, TokenCache, get_google_access_token

__all__ = [
    "GoogleSheetsRowStore",
    "OfferSearchClient",
    "TokenCache",
    "get_google_access_token",
]
