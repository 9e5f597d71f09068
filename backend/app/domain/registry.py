"""Runtime registry for entity domains."""

from __future__ import annotations

from typing import Dict

from .definitions import DomainDefinition
from .models import ProjectionError


class UnknownDomainError(ProjectionError, LookupError):
    """Raised when a caller requests an unregistered domain."""


_DOMAINS: Dict[str, DomainDefinition] = {}


def register_domain(definition: DomainDefinition) -> None:
    """Register or replace a domain definition."""

    _DOMAINS[definition.name.lower()] = definition


def get_domain(name: str) -> DomainDefinition:
    """Return the definition registered under ``name``."""

    try:
        return _DOMAINS[name.lower()]
    except KeyError as exc:
        raise UnknownDomainError(f"Domain '{name}' is not registered") from exc


def available_domains() -> tuple[str, ...]:
    """Return the tuple of registered domain names."""

    return tuple(sorted(_DOMAINS))


# Register built-in domains at import time.
from .bounty import BOUNTY  # noqa: E402
from .expense_group import EXPENSE_GROUP  # noqa: E402
from .study_fund import STUDY_FUND  # noqa: E402

register_domain(BOUNTY)
register_domain(STUDY_FUND)
register_domain(EXPENSE_GROUP)


__all__ = [
    "UnknownDomainError",
    "available_domains",
    "get_domain",
    "register_domain",
]
