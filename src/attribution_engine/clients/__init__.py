"""Clients for external services."""

from attribution_engine.clients.store import ConfigurationStoreClient, StoreRejection

__all__ = ["ConfigurationStoreClient", "StoreRejection"]
