"""
Dependency injection for repositories.

STORAGE_BACKEND selects the implementation:
- supabase: app.repositories.supabase over the shared Supabase client
- memory: app.repositories.memory over one process-wide MemoryDatabase

Endpoints never take repositories directly; app.services.deps builds the
services on top of get_repositories().

Use in tests:
    db = MemoryDatabase()
    repos = create_repositories(db)
"""
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from app.core.config import settings
from app.core.exceptions import ConfigurationError
from app.repositories import memory
from app.repositories import supabase as supabase_repos
from app.repositories.base import (
    CampaignRepository,
    CommunicationLogRepository,
    CustomerRepository,
    SegmentRepository,
)


@dataclass
class Repositories:
    customers: CustomerRepository
    segments: SegmentRepository
    campaigns: CampaignRepository
    logs: CommunicationLogRepository


@lru_cache()
def get_database() -> Any:
    """Database client for the configured backend (singleton)."""
    backend = settings.STORAGE_BACKEND.lower()
    if backend == "memory":
        return memory.MemoryDatabase()
    if backend == "supabase":
        from app.services.supabase import get_supabase_client

        return get_supabase_client()
    raise ConfigurationError(
        "Unknown STORAGE_BACKEND", {"storage_backend": settings.STORAGE_BACKEND}
    )


def create_repositories(db_client: Any) -> Repositories:
    """
    Build every repository over one database client.

    A MemoryDatabase gets the in-process implementations, anything else is
    treated as a Supabase client.
    """
    if isinstance(db_client, memory.MemoryDatabase):
        return Repositories(
            customers=memory.MemoryCustomerRepository(db_client),
            segments=memory.MemorySegmentRepository(db_client),
            campaigns=memory.MemoryCampaignRepository(db_client),
            logs=memory.MemoryCommunicationLogRepository(db_client),
        )
    return Repositories(
        customers=supabase_repos.SupabaseCustomerRepository(db_client),
        segments=supabase_repos.SupabaseSegmentRepository(db_client),
        campaigns=supabase_repos.SupabaseCampaignRepository(db_client),
        logs=supabase_repos.SupabaseCommunicationLogRepository(db_client),
    )


@lru_cache()
def get_repositories() -> Repositories:
    """Singleton set of repositories."""
    return create_repositories(get_database())
