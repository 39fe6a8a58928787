"""
Global test configuration - shared fixtures.

Services are built over the in-process MemoryDatabase, so most tests
exercise real repositories without patching. Supabase and Redis are
replaced by chainable mocks (tests.factories) where their wire calls matter.
"""

import pytest

from app.repositories import MemoryDatabase, create_repositories
from app.services.campaigns.dispatcher import CampaignDispatcher
from app.services.campaigns.reconciler import ReceiptReconciler
from app.services.campaigns.tracker import DeliveryTracker
from app.services.segments.evaluator import SegmentEvaluator
from app.services.segments.service import SegmentService
from app.services.vendor.base import MessagingVendor
from tests.factories import FakeVendor, make_redis_mock, make_supabase_mock


# =============================================================================
# FIXTURES - storage and services
# =============================================================================


@pytest.fixture
def memory_db():
    """Empty in-process database."""
    return MemoryDatabase()


@pytest.fixture
def repos(memory_db):
    return create_repositories(memory_db)


@pytest.fixture
def evaluator(repos):
    return SegmentEvaluator(repos.customers)


@pytest.fixture
def segment_service(repos, evaluator):
    return SegmentService(repos.segments, evaluator)


@pytest.fixture
def tracker(repos):
    return DeliveryTracker(repos.campaigns, repos.logs)


@pytest.fixture
def reconciler(tracker):
    return ReceiptReconciler(tracker)


@pytest.fixture
def fake_vendor():
    return FakeVendor()


@pytest.fixture
def dispatcher_factory(repos, segment_service, evaluator, tracker):
    """
    Build a dispatcher around a given vendor.

    Usage:
        dispatcher = dispatcher_factory(FakeVendor(fail_all=True))
    """

    def _build(vendor: MessagingVendor, max_concurrency: int = 5) -> CampaignDispatcher:
        return CampaignDispatcher(
            campaigns=repos.campaigns,
            segment_service=segment_service,
            evaluator=evaluator,
            tracker=tracker,
            vendor=vendor,
            max_concurrency=max_concurrency,
        )

    return _build


@pytest.fixture
def dispatcher(dispatcher_factory, fake_vendor):
    return dispatcher_factory(fake_vendor)


@pytest.fixture
def supabase_factory():
    """
    Usage:
        def test_x(supabase_factory):
            client = supabase_factory([{"id": "1"}])
    """
    return make_supabase_mock


@pytest.fixture
def mock_redis():
    return make_redis_mock()


# =============================================================================
# FIXTURES - HTTP
# =============================================================================


@pytest.fixture
def api_client(segment_service, dispatcher, reconciler):
    """
    TestClient over the real app with services on the memory backend.

    One client context means one event loop for every request in a test.
    """
    from fastapi.testclient import TestClient

    from app.main import app
    from app.services.deps import get_dispatcher, get_reconciler, get_segment_service

    app.dependency_overrides[get_segment_service] = lambda: segment_service
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_reconciler] = lambda: reconciler
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client
    app.dependency_overrides.clear()
