"""Resolve one status per aggregate from the domain's precedence table."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from loguru import logger

from app.domain.definitions import DomainDefinition
from app.domain.models import AmbiguousTerminalState, EntityAggregate


@dataclass(frozen=True, slots=True)
class StatusResolution:
    status: StrEnum
    rule: str
    anomalies: tuple[AmbiguousTerminalState, ...] = ()


def detect_terminal_conflicts(
    definition: DomainDefinition, aggregate: EntityAggregate, resolved: StrEnum
) -> tuple[AmbiguousTerminalState, ...]:
    anomalies: list[AmbiguousTerminalState] = []
    for group in definition.exclusive_terminal_kinds:
        present = tuple(sorted(kind for kind in group if aggregate.has(kind)))
        if len(present) > 1:
            anomalies.append(
                AmbiguousTerminalState(
                    entity_id=aggregate.entity_id,
                    kinds=present,
                    resolved=resolved.value,
                )
            )
    return tuple(anomalies)


def resolve_status(
    definition: DomainDefinition, aggregate: EntityAggregate, now: int
) -> StatusResolution:
    """Evaluate the precedence table top to bottom; the first match wins.

    ``now`` is supplied by the caller in Unix seconds so resolution is a pure
    function of its inputs.
    """

    status = definition.default_status
    rule_label = f"default:{status.value}"
    for rule in definition.rules:
        if rule.predicate(aggregate, now):
            status = rule.status
            rule_label = rule.label
            break

    anomalies = detect_terminal_conflicts(definition, aggregate, status)
    for anomaly in anomalies:
        logger.warning(
            "Ambiguous terminal state for {} {}: {} present, resolved to {}",
            definition.name,
            anomaly.entity_id,
            "+".join(anomaly.kinds),
            anomaly.resolved,
        )
    return StatusResolution(status=status, rule=rule_label, anomalies=anomalies)
