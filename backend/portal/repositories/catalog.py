"""Doctor and service catalog repository."""

from portal.schemas.catalog import Doctor, Service
from portal.services.platform import PlatformClient


class CatalogRepository:
    """Read-only access to the clinic's doctors and services."""

    def __init__(self, platform: PlatformClient):
        self.platform = platform

    async def list_doctors(self) -> list[Doctor]:
        """List doctors ordered by name."""
        rows = await self.platform.select("doctors", order="full_name")
        return [Doctor.model_validate(row) for row in rows]

    async def list_services(self) -> list[Service]:
        """List services ordered by name."""
        rows = await self.platform.select("services", order="name")
        return [Service.model_validate(row) for row in rows]
