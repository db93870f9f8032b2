"""Repository layer for platform data access.

Repositories wrap table and storage calls on the platform client and return
validated schemas for the CRUD surface of the portal.
"""

from portal.repositories.appointments import AppointmentRepository
from portal.repositories.catalog import CatalogRepository
from portal.repositories.history import HistoryRepository

__all__ = ["AppointmentRepository", "CatalogRepository", "HistoryRepository"]
