"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any


class ICatalogClient(ABC):
    """Port for fetching one page of the remote chart catalog.

    Hey future me - implementations handle 429s THEMSELVES. From the sync
    engine's point of view fetch_page either returns a page or raises
    FatalFetchError; it never sees a rate-limit response.
    """

    @abstractmethod
    async def fetch_page(self, after_time: datetime, cursor: int) -> list[dict[str, Any]]:
        """Fetch raw catalog records modified at/after after_time with chartId > cursor.

        Args:
            after_time: Only records with modifiedTime >= this instant
            cursor: Only records with chartId strictly greater than this

        Returns:
            Raw catalog records in the order the catalog returned them
            (possibly empty)

        Raises:
            FatalFetchError: Non-retryable failure for this page
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""
        pass


__all__ = ["ICatalogClient"]
