"""Catalog lookups for depot metadata and ownership."""

from __future__ import annotations

from typing import Protocol

from depotkit.core.types import AppInfo, Subscription

# Subscription every anonymous account holds
DEFAULT_SUBSCRIPTION_ID = 0


class Catalog(Protocol):
    """Maps depot and subscription ids to catalog records."""

    def get_app(self, app_id: int) -> AppInfo | None:
        ...

    def get_subscription(self, sub_id: int) -> Subscription | None:
        ...
