from __future__ import annotations

from typing import Any, Mapping

import httpx
from loguru import logger

from app.core.config import settings
from app.domain.definitions import EventKindSpec
from app.domain.models import ProjectionError


class SourceUnavailable(ProjectionError):
    """Raised when a required event-kind fetch fails.

    Fatal for the whole domain projection: a missing kind must never be read
    as "zero events of that kind".
    """

    def __init__(self, domain: str, kind: str | None, message: str) -> None:
        self.domain = domain
        self.kind = kind
        self.message = message
        where = f"{domain}/{kind}" if kind else domain
        super().__init__(f"Indexer unavailable for {where}: {message}")


def build_query(spec: EventKindSpec) -> str:
    """GraphQL document fetching one page of ``spec``'s collection."""

    ordering = ""
    if spec.timestamp_field:
        ordering = f", orderBy: {spec.timestamp_field}, orderDirection: desc"
    fields = "\n    ".join(spec.selection())
    return (
        f"query Fetch{spec.entity_type}($first: Int!, $skip: Int!, $where: {spec.filter_type}) {{\n"
        f"  items: {spec.collection}(first: $first, skip: $skip, where: $where{ordering}) {{\n"
        f"    {fields}\n"
        "  }\n"
        "}"
    )


class IndexerClient:
    """Thin async wrapper around the GraphQL event indexers."""

    def __init__(
        self,
        *,
        endpoints: Mapping[str, str] | None = None,
        page_size: int | None = None,
        max_records: int | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.endpoints = dict(settings.indexer_endpoints if endpoints is None else endpoints)
        self.page_size = page_size or settings.indexer_page_size
        self.max_records = max_records or settings.indexer_max_records
        self.timeout = timeout or settings.indexer_timeout_seconds
        self.client = httpx.AsyncClient(timeout=self.timeout, transport=transport)

    def endpoint_for(self, domain: str) -> str:
        try:
            return self.endpoints[domain]
        except KeyError as exc:
            raise SourceUnavailable(domain, None, "no indexer endpoint configured") from exc

    async def fetch_page(
        self,
        domain: str,
        spec: EventKindSpec,
        *,
        where: Mapping[str, Any] | None,
        skip: int,
    ) -> list[dict[str, Any]]:
        url = self.endpoint_for(domain)
        variables = {"first": self.page_size, "skip": skip, "where": dict(where or {})}
        logger.info("Indexer POST {} {} variables={}", domain, spec.collection, variables)
        try:
            response = await self.client.post(
                url, json={"query": build_query(spec), "variables": variables}
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise SourceUnavailable(domain, spec.name, str(exc) or type(exc).__name__) from exc
        except ValueError as exc:
            raise SourceUnavailable(domain, spec.name, "indexer returned a non-JSON body") from exc

        if not isinstance(payload, dict):
            raise SourceUnavailable(domain, spec.name, "unexpected response shape")
        errors = payload.get("errors")
        if errors:
            if not isinstance(errors, list):
                raise SourceUnavailable(domain, spec.name, f"indexer error: {errors!r}")
            messages = [
                str(error.get("message", error)) if isinstance(error, dict) else str(error)
                for error in errors
            ]
            raise SourceUnavailable(domain, spec.name, "; ".join(messages))
        data = payload.get("data")
        items = data.get("items") if isinstance(data, dict) else None
        if not isinstance(items, list):
            raise SourceUnavailable(domain, spec.name, "response is missing the items list")
        return items

    async def fetch_all(
        self,
        domain: str,
        spec: EventKindSpec,
        *,
        where: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        records: list[dict[str, Any]] = []
        skip = 0
        while True:
            page = await self.fetch_page(domain, spec, where=where, skip=skip)
            records.extend(page)
            if len(page) < self.page_size:
                break
            skip += self.page_size
            if skip >= self.max_records:
                overflow = await self.fetch_page(domain, spec, where=where, skip=skip)
                if not overflow:
                    break
                raise SourceUnavailable(
                    domain,
                    spec.name,
                    f"more than {self.max_records} records; refusing a truncated result",
                )
        return records

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "IndexerClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
