"""Exception hierarchy shared by the shop_admin backend."""
from __future__ import annotations

from typing import Optional


class ShopAdminError(Exception):
    """Base class for every error raised on purpose by this package."""


class StoreError(ShopAdminError):
    """A request to the hosted data service failed.

    The message is the store's own error text so it can be surfaced verbatim.
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class InvalidInputError(ShopAdminError):
    """Input was rejected before it could reach the data service."""


class NotFoundError(ShopAdminError):
    """An update or delete by identifier matched no row."""


__all__ = [
    "ShopAdminError",
    "StoreError",
    "InvalidInputError",
    "NotFoundError",
]
