"""
Tests for SegmentEvaluator over the memory backend.
"""
import pytest

from app.services.segments.compiler import MatchAll, compile_rules
from app.services.segments.evaluator import EvaluationMode
from tests.factories import make_customer


@pytest.fixture
def population(memory_db):
    customers = [
        make_customer("Asha Rao", total_spent=15000, customer_id="c-1"),
        make_customer("Ravi Iyer", total_spent=5000, customer_id="c-2"),
        make_customer("Meera Shah", total_spent=60000, customer_id="c-3"),
    ]
    memory_db.seed("customers", customers)
    return customers


class TestPreview:

    @pytest.mark.asyncio
    async def test_empty_population_counts_zero(self, evaluator):
        """No customers at all."""
        assert await evaluator.preview(MatchAll()) == 0

    @pytest.mark.asyncio
    async def test_counts_matching_customers(self, evaluator, population):
        predicate = compile_rules([{"field": "totalSpent", "operator": ">", "value": 10000}])

        assert await evaluator.preview(predicate) == 2

    @pytest.mark.asyncio
    async def test_match_all_counts_everyone(self, evaluator, population):
        assert await evaluator.preview(MatchAll()) == 3


class TestMaterialize:

    @pytest.mark.asyncio
    async def test_projection_and_order(self, evaluator, population):
        records = await evaluator.materialize(MatchAll())

        assert [r["id"] for r in records] == ["c-1", "c-2", "c-3"]
        assert set(records[0]) == {"id", "name", "email", "totalSpent", "visitCount", "lastVisit"}
        assert records[0]["totalSpent"] == 15000

    @pytest.mark.asyncio
    async def test_limit_is_applied(self, evaluator, population):
        records = await evaluator.materialize(MatchAll(), limit=2)

        assert len(records) == 2

    @pytest.mark.asyncio
    async def test_default_limit_from_settings(self, evaluator, memory_db, monkeypatch):
        from app.core.config import settings

        memory_db.seed("customers", [make_customer() for _ in range(5)])
        monkeypatch.setattr(settings, "SEGMENT_CUSTOMERS_LIMIT", 3)

        assert len(await evaluator.materialize(MatchAll())) == 3

    @pytest.mark.asyncio
    async def test_materialize_all_is_unbounded(self, evaluator, memory_db):
        memory_db.seed("customers", [make_customer() for _ in range(150)])

        assert len(await evaluator.materialize_all(MatchAll())) == 150


class TestEvaluate:

    @pytest.mark.asyncio
    async def test_preview_mode_returns_count(self, evaluator, population):
        assert await evaluator.evaluate(MatchAll(), EvaluationMode.PREVIEW) == 3

    @pytest.mark.asyncio
    async def test_materialize_mode_accepts_string(self, evaluator, population):
        records = await evaluator.evaluate(MatchAll(), "materialize", limit=1)

        assert len(records) == 1
