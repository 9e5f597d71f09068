"""Typed domain representations shared by ingestion, projection, and the API."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import timedelta
from enum import StrEnum
from typing import Any, Mapping


class ProjectionError(Exception):
    """Base class for failures raised while projecting entity state."""


@dataclass(frozen=True, slots=True)
class MetricUnavailable:
    """Marker for a metric whose inputs could not be parsed.

    Deliberately distinct from zero: ``0`` is a legitimate amount, this is not.
    """

    field: str
    reason: str


@dataclass(frozen=True, slots=True)
class DomainEvent:
    """One normalized indexer record for a single event kind."""

    kind: str
    entity_id: str
    actor: str | None = None
    timestamp: int | None = None
    transaction_hash: str | None = None
    amounts: Mapping[str, str] = field(default_factory=dict)
    attributes: Mapping[str, Any] = field(default_factory=dict)
    raw: Mapping[str, Any] = field(default_factory=dict)

    def natural_key(self) -> tuple[Any, ...]:
        """Identity used to collapse re-delivered records."""

        if self.timestamp is not None or self.transaction_hash is not None:
            return (
                self.kind,
                self.entity_id,
                self.actor,
                self.timestamp,
                self.transaction_hash,
            )
        return (self.kind, self.entity_id, self.canonical_payload())

    def canonical_payload(self) -> str:
        return json.dumps(dict(self.raw), sort_keys=True, default=str)


@dataclass(frozen=True, slots=True)
class EntityAggregate:
    """Creation record plus every deduplicated event referencing one entity."""

    domain: str
    entity_id: str
    created: DomainEvent
    events: Mapping[str, tuple[DomainEvent, ...]] = field(default_factory=dict)

    @property
    def owner(self) -> str | None:
        return self.created.actor

    def of(self, kind: str) -> tuple[DomainEvent, ...]:
        return self.events.get(kind, ())

    def has(self, kind: str) -> bool:
        return bool(self.events.get(kind))

    def attribute(self, name: str, default: Any = None) -> Any:
        return self.created.attributes.get(name, default)

    def amount(self, name: str) -> str | None:
        return self.created.amounts.get(name)

    def actors(self, kind: str) -> set[str]:
        return {event.actor for event in self.of(kind) if event.actor}


@dataclass(frozen=True, slots=True)
class OrphanedEntity:
    """Entity referenced by non-creation events whose creation record is missing."""

    entity_id: str
    kinds: tuple[str, ...]
    event_count: int


@dataclass(frozen=True, slots=True)
class AmbiguousTerminalState:
    """Mutually exclusive terminal events observed on the same entity."""

    entity_id: str
    kinds: tuple[str, ...]
    resolved: str


@dataclass(frozen=True, slots=True)
class KindTotal:
    count: int
    amount: int | MetricUnavailable | None
    actors: int


@dataclass(frozen=True, slots=True)
class DerivedMetrics:
    """Numeric projections of one aggregate at one evaluation instant."""

    progress_percent: float | MetricUnavailable | None = None
    time_remaining: timedelta | MetricUnavailable | None = None
    deadline_passed: bool | MetricUnavailable | None = None
    totals_by_kind: Mapping[str, KindTotal] = field(default_factory=dict)
    remaining_amount: int | MetricUnavailable | None = None
    approval_required: bool | MetricUnavailable | None = None
    balance_sufficient: bool | MetricUnavailable | None = None

    def unavailable(self) -> list[str]:
        """Names of metrics that could not be computed."""

        names: list[str] = []
        for name in (
            "progress_percent",
            "time_remaining",
            "deadline_passed",
            "remaining_amount",
            "approval_required",
            "balance_sufficient",
        ):
            if isinstance(getattr(self, name), MetricUnavailable):
                names.append(name)
        for kind, total in self.totals_by_kind.items():
            if isinstance(total.amount, MetricUnavailable):
                names.append(f"totals_by_kind.{kind}")
        return names


@dataclass(frozen=True, slots=True)
class EntityProjection:
    aggregate: EntityAggregate
    status: StrEnum
    metrics: DerivedMetrics
    anomalies: tuple[AmbiguousTerminalState, ...] = ()

    @property
    def entity_id(self) -> str:
        return self.aggregate.entity_id


@dataclass(slots=True)
class ProjectionBatch:
    """Every projection computed for one domain in one query cycle."""

    domain: str
    evaluated_at: int
    projections: list[EntityProjection] = field(default_factory=list)
    orphans: list[OrphanedEntity] = field(default_factory=list)
    duplicates_dropped: int = 0
    out_of_scope: int = 0

    @property
    def anomalies(self) -> list[AmbiguousTerminalState]:
        return [anomaly for projection in self.projections for anomaly in projection.anomalies]

    def get(self, entity_id: str) -> EntityProjection | None:
        for projection in self.projections:
            if projection.entity_id == entity_id:
                return projection
        return None


__all__ = [
    "AmbiguousTerminalState",
    "DerivedMetrics",
    "DomainEvent",
    "EntityAggregate",
    "EntityProjection",
    "KindTotal",
    "MetricUnavailable",
    "OrphanedEntity",
    "ProjectionBatch",
    "ProjectionError",
]
