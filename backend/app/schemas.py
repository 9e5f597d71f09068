from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from app.domain.amounts import format_units
from app.domain.definitions import DomainDefinition
from app.domain.models import (
    AmbiguousTerminalState,
    DerivedMetrics,
    DomainEvent,
    EntityProjection,
    KindTotal,
    MetricUnavailable,
    OrphanedEntity,
    ProjectionBatch,
)
from app.services.actor_summary import ActorSummary
from app.services.metrics import format_time_remaining


def _known(value: Any) -> Any:
    return None if isinstance(value, MetricUnavailable) else value


def _amount_text(value: int | MetricUnavailable | None) -> str | None:
    # Decimal strings keep uint256 precision intact for JavaScript clients.
    if value is None or isinstance(value, MetricUnavailable):
        return None
    return str(value)


class Event(BaseModel):
    kind: str
    entity_id: str
    actor: str | None = None
    timestamp: int | None = None
    transaction_hash: str | None = None
    amounts: dict[str, str] = Field(default_factory=dict)
    attributes: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_domain(cls, event: DomainEvent) -> "Event":
        return cls(
            kind=event.kind,
            entity_id=event.entity_id,
            actor=event.actor,
            timestamp=event.timestamp,
            transaction_hash=event.transaction_hash,
            amounts=dict(event.amounts),
            attributes={
                key: list(value) if isinstance(value, tuple) else value
                for key, value in event.attributes.items()
            },
        )


class KindTotalOut(BaseModel):
    count: int
    amount: str | None = None
    amount_display: str | None = None
    actors: int

    @classmethod
    def from_domain(cls, total: KindTotal, decimals: int) -> "KindTotalOut":
        return cls(
            count=total.count,
            amount=_amount_text(total.amount),
            amount_display=format_units(total.amount, decimals),
            actors=total.actors,
        )


class Metrics(BaseModel):
    progress_percent: float | None = None
    time_remaining_seconds: int | None = None
    time_remaining_display: str | None = None
    deadline_passed: bool | None = None
    totals_by_kind: dict[str, KindTotalOut] = Field(default_factory=dict)
    remaining_amount: str | None = None
    remaining_amount_display: str | None = None
    approval_required: bool | None = None
    balance_sufficient: bool | None = None
    unavailable_metrics: list[str] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, metrics: DerivedMetrics, decimals: int) -> "Metrics":
        remaining = _known(metrics.time_remaining)
        return cls(
            progress_percent=_known(metrics.progress_percent),
            time_remaining_seconds=int(remaining.total_seconds()) if remaining is not None else None,
            time_remaining_display=format_time_remaining(metrics.time_remaining),
            deadline_passed=_known(metrics.deadline_passed),
            totals_by_kind={
                kind: KindTotalOut.from_domain(total, decimals)
                for kind, total in metrics.totals_by_kind.items()
            },
            remaining_amount=_amount_text(metrics.remaining_amount),
            remaining_amount_display=format_units(metrics.remaining_amount, decimals),
            approval_required=_known(metrics.approval_required),
            balance_sufficient=_known(metrics.balance_sufficient),
            unavailable_metrics=metrics.unavailable(),
        )


class Anomaly(BaseModel):
    entity_id: str
    kinds: list[str]
    resolved: str

    @classmethod
    def from_domain(cls, anomaly: AmbiguousTerminalState) -> "Anomaly":
        return cls(entity_id=anomaly.entity_id, kinds=list(anomaly.kinds), resolved=anomaly.resolved)


class Orphan(BaseModel):
    entity_id: str
    kinds: list[str]
    event_count: int

    @classmethod
    def from_domain(cls, orphan: OrphanedEntity) -> "Orphan":
        return cls(entity_id=orphan.entity_id, kinds=list(orphan.kinds), event_count=orphan.event_count)


class Projection(BaseModel):
    domain: str
    entity_id: str
    status: str
    owner: str | None = None
    created: Event
    events: dict[str, list[Event]] = Field(default_factory=dict)
    metrics: Metrics
    anomalies: list[Anomaly] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, projection: EntityProjection, decimals: int) -> "Projection":
        aggregate = projection.aggregate
        return cls(
            domain=aggregate.domain,
            entity_id=aggregate.entity_id,
            status=projection.status.value,
            owner=aggregate.owner,
            created=Event.from_domain(aggregate.created),
            events={
                kind: [Event.from_domain(event) for event in events]
                for kind, events in aggregate.events.items()
            },
            metrics=Metrics.from_domain(projection.metrics, decimals),
            anomalies=[Anomaly.from_domain(anomaly) for anomaly in projection.anomalies],
        )


class ProjectionList(BaseModel):
    domain: str
    evaluated_at: datetime
    total: int
    items: list[Projection]
    orphaned: list[Orphan] = Field(default_factory=list)
    duplicates_dropped: int = 0
    out_of_scope: int = 0
    anomalies: list[Anomaly] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, batch: ProjectionBatch, decimals: int) -> "ProjectionList":
        return cls(
            domain=batch.domain,
            evaluated_at=datetime.fromtimestamp(batch.evaluated_at, tz=timezone.utc),
            total=len(batch.projections),
            items=[Projection.from_domain(projection, decimals) for projection in batch.projections],
            orphaned=[Orphan.from_domain(orphan) for orphan in batch.orphans],
            duplicates_dropped=batch.duplicates_dropped,
            out_of_scope=batch.out_of_scope,
            anomalies=[Anomaly.from_domain(anomaly) for anomaly in batch.anomalies],
        )


class DomainDescriptor(BaseModel):
    name: str
    statuses: list[str]
    precedence: list[str]
    event_kinds: list[str]
    supplied_kinds: list[str] = Field(default_factory=list)
    decimals: int

    @classmethod
    def from_domain(cls, definition: DomainDefinition) -> "DomainDescriptor":
        return cls(
            name=definition.name,
            statuses=[status.value for status in definition.status_enum],
            precedence=definition.precedence(),
            event_kinds=[spec.name for spec in definition.fetched_kinds],
            supplied_kinds=[spec.name for spec in definition.supplied_kinds],
            decimals=definition.decimals,
        )


class ActorSummaryOut(BaseModel):
    domain: str
    actor: str
    created: int
    created_by_status: dict[str, int] = Field(default_factory=dict)
    participated: int
    participated_by_status: dict[str, int] = Field(default_factory=dict)
    totals_by_kind: dict[str, KindTotalOut] = Field(default_factory=dict)
    completion_rate: int | None = None
    outstanding_commitment: str | None = None
    outstanding_commitment_display: str | None = None

    @classmethod
    def from_domain(cls, summary: ActorSummary, decimals: int) -> "ActorSummaryOut":
        return cls(
            domain=summary.domain,
            actor=summary.actor,
            created=summary.created,
            created_by_status=summary.created_by_status,
            participated=summary.participated,
            participated_by_status=summary.participated_by_status,
            totals_by_kind={
                kind: KindTotalOut.from_domain(total, decimals)
                for kind, total in summary.totals_by_kind.items()
            },
            completion_rate=summary.completion_rate,
            outstanding_commitment=_amount_text(summary.outstanding_commitment),
            outstanding_commitment_display=format_units(summary.outstanding_commitment, decimals),
        )
