from __future__ import annotations

from typing import Any

from app.domain.amounts import parse_timestamp
from app.domain.definitions import EventKindSpec
from app.domain.models import DomainEvent, ProjectionError


class MalformedEvent(ProjectionError, ValueError):
    """Raised when an indexer record cannot be turned into a domain event."""


def _as_address(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text.lower() if text else None


def _as_address_list(value: Any) -> tuple[str, ...]:
    """Members arrive either as a list or as one comma-separated string."""

    if isinstance(value, (list, tuple)):
        parts = [str(item) for item in value]
    elif isinstance(value, str):
        parts = value.split(",")
    else:
        return ()
    addresses: list[str] = []
    for part in parts:
        address = _as_address(part)
        if address and address not in addresses:
            addresses.append(address)
    return tuple(addresses)


def _as_amount_text(value: Any) -> str | None:
    # Kept verbatim; exact parsing happens where metrics are computed.
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return str(value)


def normalize_event(spec: EventKindSpec, raw_event: dict[str, Any]) -> DomainEvent:
    if not isinstance(raw_event, dict):
        raise MalformedEvent(f"{spec.name} record is not an object: {raw_event!r}")

    raw_id = raw_event.get(spec.entity_field)
    if raw_id is None or str(raw_id).strip() == "":
        raise MalformedEvent(f"{spec.name} record is missing '{spec.entity_field}'")

    amounts: dict[str, str] = {}
    for name in spec.amount_fields:
        text = _as_amount_text(raw_event.get(name))
        if text is not None:
            amounts[name] = text

    attributes: dict[str, Any] = {}
    for name in spec.attribute_fields:
        if name in raw_event:
            attributes[name] = raw_event[name]
    for name in spec.address_list_fields:
        attributes[name] = _as_address_list(raw_event.get(name))

    transaction_hash = None
    if spec.transaction_field:
        raw_hash = raw_event.get(spec.transaction_field)
        transaction_hash = str(raw_hash).lower() if raw_hash else None

    return DomainEvent(
        kind=spec.name,
        entity_id=str(raw_id).strip(),
        actor=_as_address(raw_event.get(spec.actor_field)) if spec.actor_field else None,
        timestamp=(
            parse_timestamp(raw_event.get(spec.timestamp_field)) if spec.timestamp_field else None
        ),
        transaction_hash=transaction_hash,
        amounts=amounts,
        attributes=attributes,
        raw=raw_event,
    )


def supplied_event(spec: EventKindSpec, entity_id: str, actor: str) -> DomainEvent:
    """Event for a fact the caller read elsewhere (e.g. a contract call)."""

    if not spec.supplied:
        raise MalformedEvent(f"{spec.name} events are read from the indexer, not supplied")
    entity = str(entity_id).strip()
    address = _as_address(actor)
    if not entity or not address:
        raise MalformedEvent(f"{spec.name} needs both an entity id and an address")
    raw = {spec.entity_field: entity}
    if spec.actor_field:
        raw[spec.actor_field] = address
    return DomainEvent(kind=spec.name, entity_id=entity, actor=address, raw=raw)
