"""Doctor and service catalog routes (public)."""

from fastapi import APIRouter, Depends

from portal.auth import get_platform
from portal.repositories.catalog import CatalogRepository
from portal.schemas.catalog import Doctor, Service
from portal.services.platform import PlatformClient

router = APIRouter(tags=["catalog"])


@router.get("/doctors", response_model=list[Doctor])
async def list_doctors(platform: PlatformClient = Depends(get_platform)) -> list[Doctor]:
    """List the clinic's doctors ordered by name."""
    return await CatalogRepository(platform).list_doctors()


@router.get("/services", response_model=list[Service])
async def list_services(platform: PlatformClient = Depends(get_platform)) -> list[Service]:
    """List the clinic's services ordered by name."""
    return await CatalogRepository(platform).list_services()
