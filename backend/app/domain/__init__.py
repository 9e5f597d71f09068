"""Domain models and declarative definitions for entity projections."""

from .bounty import BOUNTY, BountyStatus
from .definitions import DomainDefinition, EventKindSpec, StatusRule
from .expense_group import EXPENSE_GROUP, ExpenseGroupStatus
from .models import (
    AmbiguousTerminalState,
    DerivedMetrics,
    DomainEvent,
    EntityAggregate,
    EntityProjection,
    KindTotal,
    MetricUnavailable,
    OrphanedEntity,
    ProjectionBatch,
    ProjectionError,
)
from .registry import UnknownDomainError, available_domains, get_domain, register_domain
from .study_fund import STUDY_FUND, StudyFundStatus

__all__ = [
    "AmbiguousTerminalState",
    "BOUNTY",
    "BountyStatus",
    "DerivedMetrics",
    "DomainDefinition",
    "DomainEvent",
    "EXPENSE_GROUP",
    "EntityAggregate",
    "EntityProjection",
    "EventKindSpec",
    "ExpenseGroupStatus",
    "KindTotal",
    "MetricUnavailable",
    "OrphanedEntity",
    "ProjectionBatch",
    "ProjectionError",
    "STUDY_FUND",
    "StatusRule",
    "StudyFundStatus",
    "UnknownDomainError",
    "available_domains",
    "get_domain",
    "register_domain",
]
