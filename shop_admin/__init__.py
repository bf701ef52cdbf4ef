"""shop_admin: backend for the shop administration dashboard."""
from __future__ import annotations

from .api import app

__all__ = ["app"]
