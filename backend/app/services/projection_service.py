"""Recompute entity projections from the full event set on every call."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from loguru import logger

from app.domain import get_domain
from app.domain.definitions import DomainDefinition
from app.domain.models import DomainEvent, EntityProjection, ProjectionBatch
from ingestion.client import IndexerClient
from ingestion.service import SourceFilter, fetch_domain_events

from .aggregator import aggregate_events
from .metrics import compute_metrics
from .status_resolver import resolve_status


def current_timestamp() -> int:
    return int(datetime.now(timezone.utc).timestamp())


def project_events(
    definition: DomainDefinition,
    batches: Mapping[str, Any],
    now: int,
    *,
    actor: str | None = None,
    allowance: int | str | None = None,
    balance: int | str | None = None,
) -> ProjectionBatch:
    """Pure projection of already-fetched events; no I/O and no clock reads."""

    aggregation = aggregate_events(definition, batches, actor=actor)
    batch = ProjectionBatch(
        domain=definition.name,
        evaluated_at=now,
        orphans=list(aggregation.orphans),
        duplicates_dropped=aggregation.duplicates_dropped,
        out_of_scope=aggregation.out_of_scope,
    )
    for aggregate in aggregation.aggregates:
        resolution = resolve_status(definition, aggregate, now)
        metrics = compute_metrics(
            definition,
            aggregate,
            now,
            status=resolution.status,
            allowance=allowance,
            balance=balance,
        )
        batch.projections.append(
            EntityProjection(
                aggregate=aggregate,
                status=resolution.status,
                metrics=metrics,
                anomalies=resolution.anomalies,
            )
        )
    return batch


def _supplied_batches(
    definition: DomainDefinition, supplied: Mapping[str, Iterable[DomainEvent]]
) -> dict[str, list[DomainEvent]]:
    batches: dict[str, list[DomainEvent]] = {}
    for kind, events in supplied.items():
        spec = definition.kind(kind)
        if spec is None or not spec.supplied:
            raise ValueError(f"'{kind}' is not a supplied event kind of {definition.name}")
        batches[spec.name] = list(events)
    return batches


class ProjectionService:
    """Read-only facade over indexer-backed entity projections.

    Nothing is cached between calls: every call refetches every event kind and
    rebuilds every aggregate, so a newly indexed terminal event is reflected
    on the next call.
    """

    def __init__(
        self,
        client: IndexerClient,
        *,
        clock: Callable[[], int] = current_timestamp,
    ) -> None:
        self._client = client
        self._clock = clock

    async def project(
        self,
        domain: str,
        source_filter: SourceFilter | None = None,
        *,
        now: int | None = None,
        allowance: int | str | None = None,
        balance: int | str | None = None,
        supplied: Mapping[str, Iterable[DomainEvent]] | None = None,
    ) -> ProjectionBatch:
        """Fetch, aggregate and resolve every entity of ``domain``.

        ``supplied`` carries events of kinds the indexer does not record
        (expense-group settlements), keyed by kind name.
        """

        definition = get_domain(domain)
        source_filter = source_filter or SourceFilter()
        extra = _supplied_batches(definition, supplied or {})
        batches: dict[str, Any] = dict(
            await fetch_domain_events(definition, self._client, source_filter)
        )
        batches.update(extra)
        # Read after the fetch joins so time fields describe evaluation time.
        evaluated_at = self._clock() if now is None else now
        result = project_events(
            definition,
            batches,
            evaluated_at,
            actor=source_filter.actor,
            allowance=allowance,
            balance=balance,
        )
        logger.info(
            "Projected {} {} entities at {} (orphans={}, anomalies={}, duplicates_dropped={})",
            len(result.projections),
            definition.name,
            evaluated_at,
            len(result.orphans),
            len(result.anomalies),
            result.duplicates_dropped,
        )
        return result

    async def project_entity(
        self,
        domain: str,
        entity_id: str,
        *,
        now: int | None = None,
        allowance: int | str | None = None,
        balance: int | str | None = None,
        supplied: Mapping[str, Iterable[DomainEvent]] | None = None,
    ) -> EntityProjection | None:
        batch = await self.project(
            domain,
            SourceFilter(entity_id=entity_id),
            now=now,
            allowance=allowance,
            balance=balance,
            supplied=supplied,
        )
        return batch.get(entity_id)
