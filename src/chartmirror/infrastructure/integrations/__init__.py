"""External integration client implementations."""

from chartmirror.infrastructure.integrations.encore_client import EncoreCatalogClient

__all__ = ["EncoreCatalogClient"]
