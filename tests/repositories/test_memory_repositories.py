"""
Tests for the in-process repositories.
"""
import asyncio

import pytest

from app.repositories.deps import create_repositories
from app.repositories.memory import MemoryCampaignRepository
from app.repositories.supabase import SupabaseCampaignRepository
from app.services.campaigns.types import CampaignStat, CampaignStatus, LogStatus
from tests.factories import make_supabase_mock


class TestCreateRepositories:

    def test_memory_database_gets_memory_repos(self, memory_db):
        assert isinstance(create_repositories(memory_db).campaigns, MemoryCampaignRepository)

    def test_other_clients_get_supabase_repos(self):
        repos = create_repositories(make_supabase_mock())

        assert isinstance(repos.campaigns, SupabaseCampaignRepository)


class TestMemoryCampaigns:

    @pytest.mark.asyncio
    async def test_create_initializes_stats(self, repos):
        campaign = await repos.campaigns.create({
            "name": "Sale", "segment_id": "s", "message": "Hello there!", "status": "DRAFT",
        })

        assert campaign.stats.to_dict() == {
            "sent": 0, "failed": 0, "delivered": 0, "opened": 0, "clicked": 0,
        }
        assert campaign.created_at is not None

    @pytest.mark.asyncio
    async def test_concurrent_increments_are_not_lost(self, repos):
        campaign = await repos.campaigns.create({"name": "Sale", "segment_id": "s", "message": "m"})

        await asyncio.gather(
            *(repos.campaigns.increment_stat(campaign.id, CampaignStat.SENT) for _ in range(200))
        )

        assert (await repos.campaigns.get(campaign.id)).stats.sent == 200

    @pytest.mark.asyncio
    async def test_transition_only_from_sources(self, repos):
        campaign = await repos.campaigns.create({
            "name": "Sale", "segment_id": "s", "message": "m", "status": "DRAFT",
        })

        first = await repos.campaigns.transition(
            campaign.id, (CampaignStatus.DRAFT,), CampaignStatus.RUNNING
        )
        second = await repos.campaigns.transition(
            campaign.id, (CampaignStatus.DRAFT,), CampaignStatus.RUNNING
        )

        assert first.status == CampaignStatus.RUNNING
        assert second is None

    @pytest.mark.asyncio
    async def test_returned_objects_are_copies(self, repos, memory_db):
        campaign = await repos.campaigns.create({"name": "Sale", "segment_id": "s", "message": "m"})
        campaign.name = "changed"

        assert (await repos.campaigns.get(campaign.id)).name == "Sale"


class TestMemoryLogs:

    @pytest.mark.asyncio
    async def test_duplicate_vendor_message_id_rejected(self, repos):
        data = {"campaign_id": "c", "customer_id": "u", "message": "m", "vendor_message_id": "msg-1"}
        await repos.logs.create(data)

        with pytest.raises(ValueError):
            await repos.logs.create(data)

    @pytest.mark.asyncio
    async def test_list_by_campaign_filters_and_limits(self, repos):
        for i in range(3):
            await repos.logs.create({
                "campaign_id": "camp-1", "customer_id": f"u{i}", "message": "m",
                "vendor_message_id": f"msg-{i}", "status": LogStatus.PENDING.value,
            })
        await repos.logs.create({
            "campaign_id": "camp-2", "customer_id": "x", "message": "m",
            "vendor_message_id": "msg-other",
        })

        logs = await repos.logs.list_by_campaign("camp-1", limit=2)

        assert [log.vendor_message_id for log in logs] == ["msg-2", "msg-1"]
