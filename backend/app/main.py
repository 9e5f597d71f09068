from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Query

from . import schemas
from .core.config import settings
from .domain import UnknownDomainError, available_domains, get_domain
from .domain.definitions import DomainDefinition
from .domain.models import DomainEvent
from .services.actor_summary import summarize_actor
from .services.projection_service import ProjectionService
from ingestion.client import IndexerClient, SourceUnavailable
from ingestion.normalize import MalformedEvent, supplied_event
from ingestion.service import SourceFilter

app = FastAPI(title="Event Projection API", version="0.1.0", debug=settings.debug)

_AMOUNT_PATTERN = r"^[0-9]{1,78}$"


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness probe consumed by infrastructure monitors."""

    return {"status": "ok"}


async def _projection_service() -> AsyncIterator[ProjectionService]:
    """Provide a projection service wired with a fresh indexer client."""

    client = IndexerClient()
    try:
        yield ProjectionService(client)
    finally:
        await client.aclose()


def _definition(domain: str) -> DomainDefinition:
    try:
        return get_domain(domain)
    except UnknownDomainError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def _evaluation_time(at: datetime | None) -> int | None:
    if at is None:
        return None
    if at.tzinfo is None:
        at = at.replace(tzinfo=timezone.utc)
    return int(at.timestamp())


def _settlements(
    definition: DomainDefinition, settled: list[str] | None
) -> dict[str, list[DomainEvent]] | None:
    """Turn ``<entity_id>:<address>`` pairs into supplied ``settled`` events."""

    if not settled:
        return None
    spec = definition.kind("settled")
    if spec is None or not spec.supplied:
        raise HTTPException(
            status_code=422, detail=f"Domain '{definition.name}' does not accept settlements"
        )
    events: list[DomainEvent] = []
    for pair in settled:
        entity_id, _, address = pair.partition(":")
        try:
            events.append(supplied_event(spec, entity_id, address))
        except MalformedEvent as exc:
            raise HTTPException(status_code=422, detail=f"Invalid settlement '{pair}': {exc}") from exc
    return {spec.name: events}


AtQuery = Annotated[
    datetime | None,
    Query(description="Evaluate time-dependent fields at this instant instead of now"),
]
AllowanceQuery = Annotated[
    str | None,
    Query(description="Current token allowance in smallest units", pattern=_AMOUNT_PATTERN),
]
BalanceQuery = Annotated[
    str | None,
    Query(description="Current token balance in smallest units", pattern=_AMOUNT_PATTERN),
]
SettledQuery = Annotated[
    list[str] | None,
    Query(
        description=(
            "<entity_id>:<address> pairs the settlement contract reports as settled "
            "(expense groups)"
        )
    ),
]


@app.get("/domains", response_model=list[schemas.DomainDescriptor], tags=["domains"])
def list_domains():
    """Registered domains with their status vocabulary and precedence order."""

    return [schemas.DomainDescriptor.from_domain(get_domain(name)) for name in available_domains()]


@app.get(
    "/domains/{domain}/projections",
    response_model=schemas.ProjectionList,
    tags=["projections"],
)
async def list_projections(
    domain: str,
    owner: Annotated[
        str | None,
        Query(
            description=(
                "Restrict to entities this address created or emitted events on "
                "(claims, contributions, completions)"
            )
        ),
    ] = None,
    at: AtQuery = None,
    allowance: AllowanceQuery = None,
    balance: BalanceQuery = None,
    settled: SettledQuery = None,
    service: ProjectionService = Depends(_projection_service),
):
    """Project every entity of ``domain`` from the indexer's full event set."""

    definition = _definition(domain)
    supplied = _settlements(definition, settled)
    try:
        batch = await service.project(
            definition.name,
            SourceFilter(owner=owner),
            now=_evaluation_time(at),
            allowance=allowance,
            balance=balance,
            supplied=supplied,
        )
    except SourceUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return schemas.ProjectionList.from_domain(batch, definition.decimals)


@app.get(
    "/domains/{domain}/projections/{entity_id}",
    response_model=schemas.Projection,
    tags=["projections"],
)
async def get_projection(
    domain: str,
    entity_id: str,
    at: AtQuery = None,
    allowance: AllowanceQuery = None,
    balance: BalanceQuery = None,
    settled: SettledQuery = None,
    service: ProjectionService = Depends(_projection_service),
):
    """Project a single entity; 404 when it has no creation record."""

    definition = _definition(domain)
    supplied = _settlements(definition, settled)
    try:
        projection = await service.project_entity(
            definition.name,
            entity_id,
            now=_evaluation_time(at),
            allowance=allowance,
            balance=balance,
            supplied=supplied,
        )
    except SourceUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if projection is None:
        raise HTTPException(status_code=404, detail="Entity not found")
    return schemas.Projection.from_domain(projection, definition.decimals)


@app.get(
    "/domains/{domain}/actors/{address}/summary",
    response_model=schemas.ActorSummaryOut,
    tags=["actors"],
)
async def actor_summary(
    domain: str,
    address: str,
    at: AtQuery = None,
    settled: SettledQuery = None,
    service: ProjectionService = Depends(_projection_service),
):
    """Roll up what ``address`` created and participated in."""

    definition = _definition(domain)
    supplied = _settlements(definition, settled)
    try:
        batch = await service.project(
            definition.name, now=_evaluation_time(at), supplied=supplied
        )
    except SourceUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return schemas.ActorSummaryOut.from_domain(
        summarize_actor(definition, batch, address), definition.decimals
    )
