"""Numeric projections computed from one aggregate at one instant."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from enum import StrEnum

from app.domain.amounts import parse_amount, parse_timestamp, sum_amounts
from app.domain.definitions import DomainDefinition, EventKindSpec
from app.domain.models import DerivedMetrics, EntityAggregate, KindTotal, MetricUnavailable


def progress_percent(contributed: int, target: int) -> float:
    """``min(100, 100 * contributed / target)``; zero target yields ``0.0``."""

    if target <= 0:
        return 0.0
    ratio = Decimal(contributed) * 100 / Decimal(target)
    return float(min(Decimal(100), max(Decimal(0), ratio)))


def time_remaining(deadline: int, now: int) -> timedelta:
    return timedelta(seconds=max(0, deadline - now))


def format_time_remaining(remaining: timedelta | MetricUnavailable | None) -> str | None:
    """Human-readable countdown; ``"Expired"`` once nothing is left."""

    if remaining is None or isinstance(remaining, MetricUnavailable):
        return None
    seconds = int(remaining.total_seconds())
    if seconds <= 0:
        return "Expired"
    days, rest = divmod(seconds, 86_400)
    hours = rest // 3_600
    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h"
    return f"{rest // 60}m"


def kind_total(spec: EventKindSpec, aggregate: EntityAggregate) -> KindTotal:
    events = aggregate.of(spec.name)
    amount: int | MetricUnavailable | None = None
    if spec.total_amount_field:
        field = f"{spec.name}.{spec.total_amount_field}"
        amount = sum_amounts(
            [
                parse_amount(event.amounts.get(spec.total_amount_field), field=field)
                for event in events
            ],
            field=field,
        )
    return KindTotal(
        count=len(events),
        amount=amount,
        actors=len({event.actor for event in events if event.actor}),
    )


def compute_metrics(
    definition: DomainDefinition,
    aggregate: EntityAggregate,
    now: int,
    *,
    status: StrEnum | None = None,
    allowance: int | str | None = None,
    balance: int | str | None = None,
) -> DerivedMetrics:
    """Project ``aggregate`` into :class:`DerivedMetrics` at ``now``.

    Allowance and balance come from a separate on-chain read, so they are
    passed in rather than looked up. Gating comparisons stay in integer
    smallest units. Entities in a terminal ``status`` get no countdown.
    """

    totals = {spec.name: kind_total(spec, aggregate) for spec in definition.kinds}

    progress: float | MetricUnavailable | None = None
    remaining_amount: int | MetricUnavailable | None = None
    if definition.target_field and definition.progress_kind:
        target = parse_amount(
            aggregate.amount(definition.target_field), field=definition.target_field
        )
        contributed = totals[definition.progress_kind].amount
        if isinstance(target, MetricUnavailable):
            progress = target
            remaining_amount = target
        elif isinstance(contributed, MetricUnavailable):
            progress = contributed
            remaining_amount = contributed
        elif contributed is not None:
            progress = progress_percent(contributed, target)
            remaining_amount = max(0, target - contributed)

    remaining: timedelta | MetricUnavailable | None = None
    deadline_passed: bool | MetricUnavailable | None = None
    if definition.deadline_field and status not in definition.terminal_statuses:
        raw_deadline = aggregate.attribute(definition.deadline_field)
        deadline = parse_timestamp(raw_deadline)
        if deadline is None:
            marker = MetricUnavailable(
                definition.deadline_field, f"unparsable deadline: {raw_deadline!r}"
            )
            remaining = marker
            deadline_passed = marker
        else:
            remaining = time_remaining(deadline, now)
            deadline_passed = now > deadline

    approval_required: bool | MetricUnavailable | None = None
    balance_sufficient: bool | MetricUnavailable | None = None
    if definition.required_amount_field and (allowance is not None or balance is not None):
        required = parse_amount(
            aggregate.amount(definition.required_amount_field),
            field=definition.required_amount_field,
        )
        if allowance is not None:
            supplied = parse_amount(allowance, field="allowance")
            if isinstance(required, MetricUnavailable):
                approval_required = required
            elif isinstance(supplied, MetricUnavailable):
                approval_required = supplied
            else:
                approval_required = supplied < required
        if balance is not None:
            supplied = parse_amount(balance, field="balance")
            if isinstance(required, MetricUnavailable):
                balance_sufficient = required
            elif isinstance(supplied, MetricUnavailable):
                balance_sufficient = supplied
            else:
                balance_sufficient = supplied >= required

    return DerivedMetrics(
        progress_percent=progress,
        time_remaining=remaining,
        deadline_passed=deadline_passed,
        totals_by_kind=totals,
        remaining_amount=remaining_amount,
        approval_required=approval_required,
        balance_sufficient=balance_sufficient,
    )
