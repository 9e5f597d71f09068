"""Declarative description of an entity domain.

A :class:`DomainDefinition` is the single place where a domain states which
event kinds exist, how each maps onto the indexer schema, and the ordered
precedence table that turns an aggregate into one status. Resolvers and
calculators only ever read these definitions; they never hard-code a domain.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from .amounts import parse_timestamp
from .models import EntityAggregate

Predicate = Callable[[EntityAggregate, int], bool]


@dataclass(frozen=True, slots=True)
class EventKindSpec:
    """Mapping between one event kind and its indexer entity."""

    name: str
    entity_type: str
    entity_field: str
    actor_field: str | None = None
    amount_fields: tuple[str, ...] = ()
    attribute_fields: tuple[str, ...] = ()
    address_list_fields: tuple[str, ...] = ()
    timestamp_field: str | None = None
    transaction_field: str | None = None
    multiple: bool = False
    total_amount_field: str | None = None
    owner_field: str | None = None
    supplied: bool = False

    @property
    def collection(self) -> str:
        return self.entity_type[:1].lower() + self.entity_type[1:] + "s"

    @property
    def filter_type(self) -> str:
        return f"{self.entity_type}_filter"

    def selection(self) -> tuple[str, ...]:
        fields: list[str] = []
        for name in (
            self.entity_field,
            self.actor_field,
            *self.amount_fields,
            *self.attribute_fields,
            *self.address_list_fields,
            self.timestamp_field,
            self.transaction_field,
        ):
            if name and name not in fields:
                fields.append(name)
        return tuple(fields)


@dataclass(frozen=True, slots=True)
class StatusRule:
    status: StrEnum
    predicate: Predicate
    label: str


@dataclass(frozen=True, slots=True)
class DomainDefinition:
    name: str
    status_enum: type[StrEnum]
    creation: EventKindSpec
    kinds: tuple[EventKindSpec, ...]
    rules: tuple[StatusRule, ...]
    default_status: StrEnum
    decimals: int = 6
    deadline_field: str | None = None
    target_field: str | None = None
    progress_kind: str | None = None
    required_amount_field: str | None = None
    exclusive_terminal_kinds: tuple[frozenset[str], ...] = ()
    terminal_statuses: frozenset[StrEnum] = field(default_factory=frozenset)
    completion_ratio: tuple[str, str] | None = None
    commitment_kind: str | None = None
    commitment_release_statuses: frozenset[StrEnum] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        names = [self.creation.name, *(kind.name for kind in self.kinds)]
        if len(set(names)) != len(names):
            raise ValueError(f"Domain '{self.name}' declares duplicate event kinds")
        if self.creation.supplied:
            raise ValueError(f"Creation kind of '{self.name}' must be read from the indexer")
        if self.default_status not in self.status_enum:
            raise ValueError(f"Default status of '{self.name}' is not a {self.status_enum.__name__}")
        for rule in self.rules:
            if rule.status not in self.status_enum:
                raise ValueError(
                    f"Rule '{rule.label}' of '{self.name}' resolves to a foreign status"
                )
        referenced = [self.progress_kind, self.commitment_kind]
        if self.completion_ratio:
            referenced.extend(self.completion_ratio)
        for group in self.exclusive_terminal_kinds:
            referenced.extend(group)
        unknown = sorted({kind for kind in referenced if kind} - set(names))
        if unknown:
            raise ValueError(
                f"Domain '{self.name}' references undeclared kinds: {', '.join(unknown)}"
            )

    @property
    def all_kinds(self) -> tuple[EventKindSpec, ...]:
        return (self.creation, *self.kinds)

    @property
    def fetched_kinds(self) -> tuple[EventKindSpec, ...]:
        """Kinds read from the indexer; supplied kinds come from the caller."""

        return tuple(spec for spec in self.all_kinds if not spec.supplied)

    @property
    def supplied_kinds(self) -> tuple[EventKindSpec, ...]:
        return tuple(spec for spec in self.kinds if spec.supplied)

    def kind(self, name: str) -> EventKindSpec | None:
        for spec in self.all_kinds:
            if spec.name == name:
                return spec
        return None

    def precedence(self) -> list[str]:
        """Status labels in evaluation order, default last."""

        return [rule.label for rule in self.rules] + [f"default:{self.default_status.value}"]


def has_event(kind: str) -> Predicate:
    def _predicate(aggregate: EntityAggregate, now: int) -> bool:
        return aggregate.has(kind)

    return _predicate


def past_deadline(field_name: str) -> Predicate:
    """``now`` strictly after the creation record's deadline.

    An unparsable deadline never expires an entity by time.
    """

    def _predicate(aggregate: EntityAggregate, now: int) -> bool:
        deadline = parse_timestamp(aggregate.attribute(field_name))
        if deadline is None:
            return False
        return now > deadline

    return _predicate


def every_member_has(kind: str, members_field: str) -> Predicate:
    def _predicate(aggregate: EntityAggregate, now: int) -> bool:
        members = set(aggregate.attribute(members_field) or ())
        if not members:
            return False
        return members <= aggregate.actors(kind)

    return _predicate


__all__ = [
    "DomainDefinition",
    "EventKindSpec",
    "Predicate",
    "StatusRule",
    "every_member_has",
    "has_event",
    "past_deadline",
]
