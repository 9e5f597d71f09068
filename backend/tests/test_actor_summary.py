from __future__ import annotations

from app.domain import get_domain
from app.services.actor_summary import summarize_actor
from app.services.projection_service import project_events

from conftest import NOW, OTHER, POSTER, WORKER


def _board(event, posted_bounty):
    return project_events(
        get_domain("bounty"),
        {
            "posted": [
                posted_bounty("1", timestamp=NOW - 600),
                posted_bounty("2", timestamp=NOW - 500),
                posted_bounty("3", timestamp=NOW - 400, poster=OTHER),
            ],
            "claimed": [
                event("claimed", "1", actor=WORKER, timestamp=NOW - 300, amounts={"stakeAmount": "10"}),
                event("claimed", "2", actor=WORKER, timestamp=NOW - 200, amounts={"stakeAmount": "7"}),
            ],
            "completed": [
                event(
                    "completed",
                    "1",
                    actor=WORKER,
                    timestamp=NOW - 100,
                    amounts={"stakeRefund": "10", "tipPaid": "25"},
                )
            ],
        },
        NOW,
    )


def test_worker_summary(event, posted_bounty):
    summary = summarize_actor(get_domain("bounty"), _board(event, posted_bounty), WORKER.upper())

    assert summary.actor == WORKER
    assert summary.created == 0
    assert summary.participated == 2
    assert summary.participated_by_status == {"claimed": 1, "completed": 1}
    assert summary.totals_by_kind["claimed"].count == 2
    assert summary.totals_by_kind["claimed"].amount == 17
    assert summary.totals_by_kind["completed"].amount == 25
    assert summary.completion_rate == 50
    assert summary.outstanding_commitment == 7


def test_poster_summary(event, posted_bounty):
    summary = summarize_actor(get_domain("bounty"), _board(event, posted_bounty), POSTER)

    assert summary.created == 2
    assert summary.created_by_status == {"claimed": 1, "completed": 1}
    assert summary.participated == 0
    assert summary.completion_rate == 0
    assert summary.outstanding_commitment == 0


def test_study_fund_summary_has_no_completion_rate(event, created_fund):
    batch = project_events(
        get_domain("study_fund"),
        {
            "created": [created_fund("7")],
            "contributed": [
                event(
                    "contributed",
                    "7",
                    actor=WORKER,
                    timestamp=NOW - 10,
                    transaction_hash="0xtx",
                    amounts={"amount": "25"},
                )
            ],
        },
        NOW,
    )

    summary = summarize_actor(get_domain("study_fund"), batch, WORKER)

    assert summary.participated_by_status == {"active": 1}
    assert summary.totals_by_kind["contributed"].amount == 25
    assert summary.completion_rate is None
    assert summary.outstanding_commitment is None
