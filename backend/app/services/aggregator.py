"""Group heterogeneous event streams into one aggregate per entity."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from app.domain.definitions import DomainDefinition
from app.domain.models import DomainEvent, EntityAggregate, OrphanedEntity


@dataclass(slots=True)
class AggregationResult:
    aggregates: list[EntityAggregate] = field(default_factory=list)
    orphans: list[OrphanedEntity] = field(default_factory=list)
    duplicates_dropped: int = 0
    out_of_scope: int = 0

    def by_id(self) -> dict[str, EntityAggregate]:
        return {aggregate.entity_id: aggregate for aggregate in self.aggregates}


def _events_of(batch: Any) -> Iterable[DomainEvent]:
    # Accepts ingestion EventBatch objects as well as plain event sequences.
    return getattr(batch, "events", batch)


def aggregate_events(
    definition: DomainDefinition,
    batches: Mapping[str, Any],
    *,
    actor: str | None = None,
) -> AggregationResult:
    """Build one :class:`EntityAggregate` per entity id.

    Single-occurrence kinds keep their first-seen record; multi-occurrence
    kinds keep every record that is distinct by natural key. Input order only
    affects which of several conflicting single records wins, never whether an
    entity or kind is present.
    """

    result = AggregationResult()
    scoped_actor = actor.lower() if actor else None
    per_kind: dict[str, dict[str, list[DomainEvent]]] = {
        spec.name: {} for spec in definition.all_kinds
    }
    seen_keys: set[tuple[Any, ...]] = set()

    for kind, batch in batches.items():
        spec = definition.kind(kind)
        if spec is None:
            logger.warning("Ignoring events of undeclared kind '{}' for {}", kind, definition.name)
            continue
        bucket = per_kind[spec.name]
        for event in _events_of(batch):
            key = event.natural_key()
            if key in seen_keys:
                result.duplicates_dropped += 1
                continue
            seen_keys.add(key)
            existing = bucket.setdefault(event.entity_id, [])
            if existing and not spec.multiple:
                result.duplicates_dropped += 1
                if existing[0].canonical_payload() != event.canonical_payload():
                    logger.warning(
                        "Conflicting {} records for {} {}; keeping the first seen",
                        spec.name,
                        definition.name,
                        event.entity_id,
                    )
                continue
            existing.append(event)

    created = per_kind[definition.creation.name]
    referenced: set[str] = set()
    for spec in definition.kinds:
        referenced.update(per_kind[spec.name])

    for entity_id in sorted(referenced - set(created)):
        events = [event for spec in definition.kinds for event in per_kind[spec.name].get(entity_id, ())]
        if scoped_actor and not any(event.actor == scoped_actor for event in events):
            result.out_of_scope += 1
            continue
        result.orphans.append(
            OrphanedEntity(
                entity_id=entity_id,
                kinds=tuple(sorted({event.kind for event in events})),
                event_count=len(events),
            )
        )

    for entity_id, records in created.items():
        result.aggregates.append(
            EntityAggregate(
                domain=definition.name,
                entity_id=entity_id,
                created=records[0],
                events={
                    spec.name: tuple(per_kind[spec.name].get(entity_id, ()))
                    for spec in definition.kinds
                },
            )
        )
    result.aggregates.sort(
        key=lambda aggregate: (-(aggregate.created.timestamp or 0), aggregate.entity_id)
    )

    if result.orphans:
        logger.warning(
            "{} {} entities have events but no {} record: {}",
            len(result.orphans),
            definition.name,
            definition.creation.name,
            ", ".join(orphan.entity_id for orphan in result.orphans),
        )
    logger.debug(
        "Aggregated {} {} entities (duplicates_dropped={}, out_of_scope={})",
        len(result.aggregates),
        definition.name,
        result.duplicates_dropped,
        result.out_of_scope,
    )
    return result
