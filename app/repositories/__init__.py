"""
Repositories - data access layer.

Business services depend on the abstract repositories in `base`; the
backend is picked once in `deps` from STORAGE_BACKEND.

Usage in tests:
    from app.repositories import MemoryDatabase, create_repositories

    db = MemoryDatabase()
    db.seed("customers", [...])
    repos = create_repositories(db)
"""

from .base import (
    BaseRepository,
    CampaignRepository,
    CommunicationLogRepository,
    CustomerRepository,
    SegmentRepository,
)
from .deps import Repositories, create_repositories, get_repositories
from .memory import MemoryDatabase

__all__ = [
    # Base
    "BaseRepository",
    "CustomerRepository",
    "SegmentRepository",
    "CampaignRepository",
    "CommunicationLogRepository",
    # Memory backend
    "MemoryDatabase",
    # Dependency injection
    "Repositories",
    "create_repositories",
    "get_repositories",
]
