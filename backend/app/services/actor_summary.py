"""Per-address rollups over a projection batch ("my items" views)."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from app.domain.amounts import parse_amount, sum_amounts
from app.domain.definitions import DomainDefinition
from app.domain.models import KindTotal, MetricUnavailable, ProjectionBatch


@dataclass(slots=True)
class ActorSummary:
    domain: str
    actor: str
    created: int = 0
    created_by_status: dict[str, int] = field(default_factory=dict)
    participated: int = 0
    participated_by_status: dict[str, int] = field(default_factory=dict)
    totals_by_kind: dict[str, KindTotal] = field(default_factory=dict)
    completion_rate: int | None = None
    outstanding_commitment: int | MetricUnavailable | None = None


def summarize_actor(
    definition: DomainDefinition, batch: ProjectionBatch, actor: str
) -> ActorSummary:
    address = actor.lower()
    summary = ActorSummary(domain=definition.name, actor=address)
    created_status: Counter[str] = Counter()
    participated_status: Counter[str] = Counter()
    own_amounts: dict[str, list[int | MetricUnavailable]] = {spec.name: [] for spec in definition.kinds}
    own_counts: Counter[str] = Counter()
    own_entities: dict[str, set[str]] = {spec.name: set() for spec in definition.kinds}
    commitments: list[int | MetricUnavailable] = []

    for projection in batch.projections:
        aggregate = projection.aggregate
        if aggregate.owner == address:
            created_status[projection.status.value] += 1

        involved = False
        for spec in definition.kinds:
            for event in aggregate.of(spec.name):
                if event.actor != address:
                    continue
                involved = True
                own_counts[spec.name] += 1
                own_entities[spec.name].add(aggregate.entity_id)
                if spec.total_amount_field:
                    own_amounts[spec.name].append(
                        parse_amount(
                            event.amounts.get(spec.total_amount_field),
                            field=f"{spec.name}.{spec.total_amount_field}",
                        )
                    )
                if (
                    spec.name == definition.commitment_kind
                    and projection.status not in definition.commitment_release_statuses
                    and spec.total_amount_field
                ):
                    commitments.append(own_amounts[spec.name][-1])
        if involved:
            participated_status[projection.status.value] += 1

    summary.created = sum(created_status.values())
    summary.created_by_status = dict(sorted(created_status.items()))
    summary.participated = sum(participated_status.values())
    summary.participated_by_status = dict(sorted(participated_status.items()))
    for spec in definition.kinds:
        amount = None
        if spec.total_amount_field:
            amount = sum_amounts(
                own_amounts[spec.name], field=f"{spec.name}.{spec.total_amount_field}"
            )
        summary.totals_by_kind[spec.name] = KindTotal(
            count=own_counts[spec.name],
            amount=amount,
            actors=1 if own_counts[spec.name] else 0,
        )

    if definition.completion_ratio:
        done_kind, attempted_kind = definition.completion_ratio
        attempted = len(own_entities[attempted_kind])
        done = len(own_entities[done_kind])
        summary.completion_rate = round(100 * done / attempted) if attempted else 0
    if definition.commitment_kind:
        summary.outstanding_commitment = sum_amounts(
            commitments, field=f"{definition.commitment_kind}.commitment"
        )
    return summary
