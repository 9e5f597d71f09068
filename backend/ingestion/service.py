from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from app.core.config import settings
from app.domain.definitions import DomainDefinition, EventKindSpec
from app.domain.models import DomainEvent

from .client import IndexerClient, SourceUnavailable
from .normalize import MalformedEvent, normalize_event


@dataclass(slots=True)
class SourceFilter:
    """Optional narrowing of a domain fetch.

    ``owner`` only narrows the creation kind; every other kind is fetched in
    full so status evidence for the owner's entities is never missing.
    """

    entity_id: str | None = None
    owner: str | None = None

    @property
    def actor(self) -> str | None:
        return self.owner.lower() if self.owner else None


@dataclass(slots=True)
class EventBatch:
    kind: str
    events: list[DomainEvent] = field(default_factory=list)
    rejected: int = 0


def _where_for(
    definition: DomainDefinition, spec: EventKindSpec, source_filter: SourceFilter
) -> dict[str, Any]:
    where: dict[str, Any] = {}
    if source_filter.entity_id:
        where[spec.entity_field] = source_filter.entity_id
    if source_filter.actor and spec is definition.creation and spec.owner_field:
        where[spec.owner_field] = source_filter.actor
    return where


def normalize_batch(spec: EventKindSpec, records: list[dict[str, Any]]) -> EventBatch:
    batch = EventBatch(kind=spec.name)
    for record in records:
        try:
            batch.events.append(normalize_event(spec, record))
        except MalformedEvent as exc:
            batch.rejected += 1
            logger.warning("Skipping malformed {} record: {}", spec.name, exc)
    return batch


def _missing_creations(
    definition: DomainDefinition, batches: dict[str, EventBatch], actor: str
) -> list[str]:
    created = {event.entity_id for event in batches[definition.creation.name].events}
    referenced: set[str] = set()
    for spec in definition.fetched_kinds:
        if spec is definition.creation:
            continue
        for event in batches[spec.name].events:
            if event.actor == actor and event.entity_id not in created:
                referenced.add(event.entity_id)
    return sorted(referenced)


async def _gather_kinds(
    definition: DomainDefinition,
    client: IndexerClient,
    source_filter: SourceFilter,
    max_concurrency: int,
) -> dict[str, EventBatch]:
    semaphore = asyncio.Semaphore(max_concurrency)

    async def _fetch(spec: EventKindSpec) -> list[dict[str, Any]]:
        async with semaphore:
            return await client.fetch_all(
                definition.name, spec, where=_where_for(definition, spec, source_filter)
            )

    specs = definition.fetched_kinds
    results = await asyncio.gather(*(_fetch(spec) for spec in specs), return_exceptions=True)

    failures = [result for result in results if isinstance(result, BaseException)]
    if failures:
        for failure in failures:
            logger.error("Event fetch failed for {}: {}", definition.name, failure)
        first = failures[0]
        if isinstance(first, SourceUnavailable):
            raise first
        raise SourceUnavailable(definition.name, None, str(first)) from first

    # Built only after every fetch has joined.
    batches = {spec.name: normalize_batch(spec, records) for spec, records in zip(specs, results)}

    actor = source_filter.actor
    if actor and not source_filter.entity_id:
        missing = _missing_creations(definition, batches, actor)
        if missing:
            creation = definition.creation
            logger.info(
                "Backfilling {} {} records referenced by {}",
                len(missing),
                creation.name,
                actor,
            )
            records = await client.fetch_all(
                definition.name, creation, where={f"{creation.entity_field}_in": missing}
            )
            backfill = normalize_batch(creation, records)
            batches[creation.name].events.extend(backfill.events)
            batches[creation.name].rejected += backfill.rejected
    return batches


async def fetch_domain_events(
    definition: DomainDefinition,
    client: IndexerClient,
    source_filter: SourceFilter | None = None,
    *,
    max_concurrency: int | None = None,
    timeout: float | None = None,
) -> dict[str, EventBatch]:
    """Fetch every indexed event kind of ``definition``; all or nothing."""

    source_filter = source_filter or SourceFilter()
    concurrency = max_concurrency or settings.indexer_max_concurrency
    deadline = timeout or settings.projection_timeout_seconds
    try:
        batches = await asyncio.wait_for(
            _gather_kinds(definition, client, source_filter, concurrency), timeout=deadline
        )
    except TimeoutError as exc:
        raise SourceUnavailable(
            definition.name, None, f"fetch did not complete within {deadline}s"
        ) from exc

    logger.info(
        "Fetched {} events across {} kinds for {} (rejected={})",
        sum(len(batch.events) for batch in batches.values()),
        len(batches),
        definition.name,
        sum(batch.rejected for batch in batches.values()),
    )
    return batches
