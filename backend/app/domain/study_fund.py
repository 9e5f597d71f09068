"""Study funds: pooled contributions toward a shared learning resource."""

from __future__ import annotations

from enum import StrEnum

from .definitions import DomainDefinition, EventKindSpec, StatusRule, has_event, past_deadline


class StudyFundStatus(StrEnum):
    active = "active"
    funded = "funded"
    finalized = "finalized"
    resource_purchased = "resource_purchased"
    access_distributed = "access_distributed"
    expired = "expired"


CREATED = EventKindSpec(
    name="created",
    entity_type="StudyFundCreated",
    entity_field="fundId",
    actor_field="organizer",
    amount_fields=("contributionAmount", "targetAmount"),
    attribute_fields=("topic", "description", "deadline", "maxParticipants"),
    timestamp_field="timestamp",
    transaction_field="transactionHash",
    owner_field="organizer",
)

CONTRIBUTED = EventKindSpec(
    name="contributed",
    entity_type="FundContributed",
    entity_field="fundId",
    actor_field="contributor",
    amount_fields=("amount",),
    timestamp_field="timestamp",
    transaction_field="transactionHash",
    multiple=True,
    total_amount_field="amount",
)

TARGET_REACHED = EventKindSpec(
    name="target_reached",
    entity_type="FundTargetReached",
    entity_field="fundId",
    amount_fields=("totalAmount",),
    attribute_fields=("participantCount",),
    total_amount_field="totalAmount",
)

FINALIZED = EventKindSpec(
    name="finalized",
    entity_type="FundFinalized",
    entity_field="fundId",
    actor_field="organizer",
    amount_fields=("finalAmount",),
    total_amount_field="finalAmount",
)

RESOURCE_PURCHASED = EventKindSpec(
    name="resource_purchased",
    entity_type="ResourcePurchased",
    entity_field="fundId",
    amount_fields=("purchaseAmount",),
    attribute_fields=("resourceURI",),
    total_amount_field="purchaseAmount",
)

ACCESS_DISTRIBUTED = EventKindSpec(
    name="access_distributed",
    entity_type="AccessDistributed",
    entity_field="fundId",
    attribute_fields=("accessMetadataURI", "participantCount"),
)

ACCESS_CLAIMED = EventKindSpec(
    name="access_claimed",
    entity_type="AccessClaimed",
    entity_field="fundId",
    actor_field="contributor",
    attribute_fields=("accessInfo",),
    timestamp_field="timestamp",
    multiple=True,
)

EXPIRED = EventKindSpec(
    name="expired",
    entity_type="FundExpired",
    entity_field="fundId",
    amount_fields=("refundAmount",),
    total_amount_field="refundAmount",
)


STUDY_FUND = DomainDefinition(
    name="study_fund",
    status_enum=StudyFundStatus,
    creation=CREATED,
    kinds=(
        CONTRIBUTED,
        TARGET_REACHED,
        FINALIZED,
        RESOURCE_PURCHASED,
        ACCESS_DISTRIBUTED,
        ACCESS_CLAIMED,
        EXPIRED,
    ),
    rules=(
        StatusRule(StudyFundStatus.expired, has_event("expired"), "expired event"),
        StatusRule(
            StudyFundStatus.access_distributed,
            has_event("access_distributed"),
            "access_distributed",
        ),
        StatusRule(
            StudyFundStatus.resource_purchased,
            has_event("resource_purchased"),
            "resource_purchased",
        ),
        StatusRule(StudyFundStatus.finalized, has_event("finalized"), "finalized"),
        StatusRule(StudyFundStatus.funded, has_event("target_reached"), "target_reached"),
        StatusRule(StudyFundStatus.expired, past_deadline("deadline"), "now > deadline"),
    ),
    default_status=StudyFundStatus.active,
    decimals=6,
    deadline_field="deadline",
    target_field="targetAmount",
    progress_kind="contributed",
    required_amount_field="contributionAmount",
    exclusive_terminal_kinds=(frozenset({"expired", "finalized"}),),
    terminal_statuses=frozenset({StudyFundStatus.access_distributed, StudyFundStatus.expired}),
)
