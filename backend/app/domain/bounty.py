"""Bounty board: posted tasks claimed, submitted and completed by workers."""

from __future__ import annotations

from enum import StrEnum

from .definitions import DomainDefinition, EventKindSpec, StatusRule, has_event, past_deadline


class BountyStatus(StrEnum):
    open = "open"
    claimed = "claimed"
    submitted = "submitted"
    completed = "completed"
    cancelled = "cancelled"
    expired = "expired"


POSTED = EventKindSpec(
    name="posted",
    entity_type="BountyPosted",
    entity_field="bountyId",
    actor_field="poster",
    amount_fields=("stakeAmount", "tipAmount"),
    attribute_fields=("description", "category", "deadline"),
    timestamp_field="timestamp_",
    owner_field="poster",
)

CLAIMED = EventKindSpec(
    name="claimed",
    entity_type="BountyClaimed",
    entity_field="bountyId",
    actor_field="worker",
    amount_fields=("stakeAmount",),
    timestamp_field="timestamp_",
    multiple=True,
    total_amount_field="stakeAmount",
)

SUBMITTED = EventKindSpec(
    name="submitted",
    entity_type="BountySubmitted",
    entity_field="bountyId",
    actor_field="worker",
    attribute_fields=("proofHash",),
    timestamp_field="timestamp_",
    multiple=True,
)

COMPLETED = EventKindSpec(
    name="completed",
    entity_type="BountyCompleted",
    entity_field="bountyId",
    actor_field="worker",
    amount_fields=("stakeRefund", "tipPaid"),
    attribute_fields=("poster",),
    timestamp_field="timestamp_",
    total_amount_field="tipPaid",
)

CANCELLED = EventKindSpec(
    name="cancelled",
    entity_type="BountyCancelled",
    entity_field="bountyId",
    actor_field="poster",
    timestamp_field="timestamp_",
)


BOUNTY = DomainDefinition(
    name="bounty",
    status_enum=BountyStatus,
    creation=POSTED,
    kinds=(CLAIMED, SUBMITTED, COMPLETED, CANCELLED),
    rules=(
        StatusRule(BountyStatus.completed, has_event("completed"), "completed"),
        StatusRule(BountyStatus.cancelled, has_event("cancelled"), "cancelled"),
        StatusRule(BountyStatus.submitted, has_event("submitted"), "submitted"),
        StatusRule(BountyStatus.claimed, has_event("claimed"), "claimed"),
        StatusRule(BountyStatus.expired, past_deadline("deadline"), "now > deadline"),
    ),
    default_status=BountyStatus.open,
    decimals=6,
    deadline_field="deadline",
    required_amount_field="stakeAmount",
    exclusive_terminal_kinds=(frozenset({"completed", "cancelled"}),),
    terminal_statuses=frozenset({BountyStatus.completed, BountyStatus.cancelled}),
    completion_ratio=("completed", "claimed"),
    commitment_kind="claimed",
    commitment_release_statuses=frozenset({BountyStatus.completed, BountyStatus.cancelled}),
)
