from __future__ import annotations

import asyncio

import httpx
import pytest

from app.domain import UnknownDomainError, get_domain
from app.domain.bounty import BountyStatus
from app.domain.expense_group import MEMBER_SETTLED, ExpenseGroupStatus
from app.domain.study_fund import StudyFundStatus
from app.services.projection_service import ProjectionService, project_events
from ingestion.client import IndexerClient, SourceUnavailable
from ingestion.normalize import supplied_event
from ingestion.service import SourceFilter, fetch_domain_events

from conftest import NOW, OTHER, POSTER, WORKER


def _bounty_records() -> dict[str, list[dict[str, str]]]:
    return {
        "bountyPosteds": [
            {
                "bountyId": "1",
                "poster": POSTER,
                "stakeAmount": "10",
                "tipAmount": "25",
                "description": "Walk the dog",
                "category": "errand",
                "deadline": str(NOW + 3600),
                "timestamp_": str(NOW - 600),
            },
            {
                "bountyId": "2",
                "poster": OTHER,
                "stakeAmount": "10",
                "tipAmount": "5",
                "description": "Proofread essay",
                "category": "writing",
                "deadline": str(NOW - 1),
                "timestamp_": str(NOW - 900),
            },
        ],
        "bountyClaimeds": [
            {"bountyId": "1", "worker": WORKER, "stakeAmount": "10", "timestamp_": str(NOW - 300)},
        ],
        "bountyCompleteds": [
            {
                "bountyId": "1",
                "worker": WORKER,
                "stakeRefund": "10",
                "tipPaid": "25",
                "poster": POSTER,
                "timestamp_": str(NOW - 60),
            }
        ],
    }


def _study_records() -> dict[str, list[dict[str, str]]]:
    return {
        "studyFundCreateds": [
            {
                "fundId": "7",
                "organizer": POSTER,
                "contributionAmount": "25",
                "targetAmount": "250",
                "topic": "programming",
                "description": "Shared course licence",
                "deadline": str(NOW + 86_400),
                "maxParticipants": "10",
                "timestamp": str(NOW - 86_400),
                "transactionHash": "0xcreate",
            }
        ],
        "fundContributeds": [
            {
                "fundId": "7",
                "contributor": f"0x{index + 1:040x}",
                "amount": "25",
                "timestamp": str(NOW - 1000 + index),
                "transactionHash": f"0xtx{index}",
            }
            for index in range(9)
        ],
    }


def _service(indexer) -> ProjectionService:
    client = IndexerClient(
        endpoints={"bounty": "https://indexer.test/bounty", "study_fund": "https://indexer.test/study"},
        page_size=2,
        max_records=50,
        timeout=5.0,
        transport=indexer.transport(),
    )
    return ProjectionService(client, clock=lambda: NOW)


def test_completed_bounty_end_to_end(fake_indexer):
    service = _service(fake_indexer(_bounty_records()))

    batch = asyncio.run(service.project("bounty"))

    assert [projection.entity_id for projection in batch.projections] == ["1", "2"]
    completed = batch.get("1")
    assert completed.status is BountyStatus.completed
    assert completed.metrics.totals_by_kind["completed"].amount == 25
    assert completed.metrics.totals_by_kind["claimed"].actors == 1
    assert batch.get("2").status is BountyStatus.expired
    assert batch.evaluated_at == NOW
    assert batch.orphans == []


def test_study_fund_end_to_end(fake_indexer):
    service = _service(fake_indexer(_study_records()))

    projection = asyncio.run(service.project_entity("study_fund", "7"))

    assert projection.status is StudyFundStatus.active
    assert projection.metrics.progress_percent == 90.0
    assert projection.metrics.remaining_amount == 25


def test_partial_fetch_failure_fails_whole_projection(fake_indexer):
    indexer = fake_indexer(_bounty_records(), failing={"bountyCompleteds"})
    service = _service(indexer)

    with pytest.raises(SourceUnavailable) as excinfo:
        asyncio.run(service.project("bounty"))

    assert excinfo.value.kind == "completed"


def test_recomputation_is_deterministic(fake_indexer):
    service = _service(fake_indexer(_bounty_records()))

    first = asyncio.run(service.project("bounty"))
    second = asyncio.run(service.project("bounty"))

    assert first.projections == second.projections
    assert [p.status for p in first.projections] == [p.status for p in second.projections]


def test_newly_indexed_terminal_event_is_reflected(fake_indexer):
    records = _bounty_records()
    records["bountyCompleteds"] = []
    indexer = fake_indexer(records)
    service = _service(indexer)

    before = asyncio.run(service.project_entity("bounty", "1"))
    indexer.records["bountyCancelleds"] = [
        {"bountyId": "1", "poster": POSTER, "timestamp_": str(NOW - 5)}
    ]
    after = asyncio.run(service.project_entity("bounty", "1"))

    assert before.status is BountyStatus.claimed
    assert after.status is BountyStatus.cancelled


def test_entity_filter_applies_to_every_kind(fake_indexer):
    indexer = fake_indexer(_bounty_records())
    service = _service(indexer)

    missing = asyncio.run(service.project_entity("bounty", "404"))

    assert missing is None
    assert {request["collection"] for request in indexer.requests} == {
        "bountyPosteds",
        "bountyClaimeds",
        "bountySubmitteds",
        "bountyCompleteds",
        "bountyCancelleds",
    }
    assert all(request["where"] == {"bountyId": "404"} for request in indexer.requests)


def test_owner_view_backfills_creations_the_actor_participated_in(fake_indexer):
    indexer = fake_indexer(_bounty_records())
    service = _service(indexer)

    batch = asyncio.run(service.project("bounty", SourceFilter(owner=WORKER.upper())))

    assert [projection.entity_id for projection in batch.projections] == ["1"]
    assert batch.orphans == []
    backfill = [r for r in indexer.requests if "bountyId_in" in (r["where"] or {})]
    assert backfill and backfill[0]["where"] == {"bountyId_in": ["1"]}


def test_malformed_records_are_skipped(fake_indexer, test_settings):
    records = _bounty_records()
    records["bountyClaimeds"].append({"worker": WORKER, "stakeAmount": "10"})
    indexer = fake_indexer(records)

    async def _run():
        async with IndexerClient(
            endpoints={"bounty": "https://indexer.test/bounty"},
            transport=indexer.transport(),
        ) as client:
            return await fetch_domain_events(get_domain("bounty"), client)

    batches = asyncio.run(_run())

    assert batches["claimed"].rejected == 1
    assert len(batches["claimed"].events) == 1
    assert all(request["first"] == test_settings.indexer_page_size for request in indexer.requests)


def test_slow_indexer_times_out():
    async def _slow(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1)
        return httpx.Response(200, json={"data": {"items": []}})

    async def _run():
        async with IndexerClient(
            endpoints={"bounty": "https://indexer.test/bounty"},
            transport=httpx.MockTransport(_slow),
        ) as client:
            await fetch_domain_events(get_domain("bounty"), client, timeout=0.05)

    with pytest.raises(SourceUnavailable, match="did not complete"):
        asyncio.run(_run())


def test_unknown_domain_is_rejected(fake_indexer):
    service = _service(fake_indexer())

    with pytest.raises(UnknownDomainError):
        asyncio.run(service.project("raffle"))


def test_project_events_is_pure(event, posted_bounty):
    definition = get_domain("bounty")
    batches = {
        "posted": [posted_bounty("1", deadline=NOW + 10)],
        "claimed": [event("claimed", "1", actor=WORKER, timestamp=NOW)],
    }

    early = project_events(definition, batches, NOW)
    late = project_events(definition, batches, NOW + 11)

    assert early.get("1").status is BountyStatus.claimed
    assert late.get("1").status is BountyStatus.claimed
    assert early.get("1").metrics.deadline_passed is False
    assert late.get("1").metrics.deadline_passed is True


def test_bounty_moves_from_claimed_to_completed(fake_indexer):
    records = _bounty_records()
    completion = records.pop("bountyCompleteds")
    indexer = fake_indexer(records)
    service = _service(indexer)

    claimed = asyncio.run(service.project_entity("bounty", "1"))
    indexer.records["bountyCompleteds"] = completion
    completed = asyncio.run(service.project_entity("bounty", "1"))

    assert claimed.status is BountyStatus.claimed
    assert claimed.metrics.totals_by_kind["completed"].amount == 0
    assert completed.status is BountyStatus.completed
    assert completed.metrics.totals_by_kind["completed"].amount == 25
    assert completed.metrics.totals_by_kind["claimed"].amount == 10


def test_failed_backfill_fails_the_owner_view(fake_indexer):
    indexer = fake_indexer(_bounty_records(), failing_after={"bountyPosteds": 1})
    service = _service(indexer)

    with pytest.raises(SourceUnavailable) as excinfo:
        asyncio.run(service.project("bounty", SourceFilter(owner=WORKER)))

    assert excinfo.value.kind == "posted"
    posted = [r for r in indexer.requests if r["collection"] == "bountyPosteds"]
    assert posted[-1]["where"] == {"bountyId_in": ["1"]}


def test_expense_groups_fetch_creations_only(fake_indexer):
    indexer = fake_indexer(
        {
            "groupCreateds": [
                {
                    "groupId": "4",
                    "creator": POSTER,
                    "members": [POSTER, WORKER],
                    "totalAmount": "300",
                    "timestamp_": str(NOW - 100),
                }
            ]
        }
    )
    client = IndexerClient(
        endpoints={"expense_group": "https://indexer.test/groups"},
        page_size=10,
        transport=indexer.transport(),
    )
    service = ProjectionService(client, clock=lambda: NOW)
    settled = [supplied_event(MEMBER_SETTLED, "4", WORKER)]

    batch = asyncio.run(service.project("expense_group", supplied={"settled": settled}))

    assert batch.get("4").status is ExpenseGroupStatus.partially_settled
    assert {request["collection"] for request in indexer.requests} == {"groupCreateds"}


def test_only_supplied_kinds_can_be_supplied(fake_indexer, event):
    service = _service(fake_indexer(_bounty_records()))

    with pytest.raises(ValueError, match="not a supplied event kind"):
        asyncio.run(
            service.project("bounty", supplied={"completed": [event("completed", "1")]})
        )
