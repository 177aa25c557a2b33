"""Facade used by the desktop UI and the local API."""
from __future__ import annotations

from .facade import MediaStoreFacade

__all__ = ["MediaStoreFacade"]
