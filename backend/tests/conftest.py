from __future__ import annotations

import json
import re
import sys
from pathlib import Path
from typing import Any, Callable

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import httpx
import pytest

from app.core.config import Settings
from app.domain.models import DomainEvent

NOW = 1_750_000_000
POSTER = "0x00000000000000000000000000000000000000aa"
WORKER = "0x00000000000000000000000000000000000000bb"
OTHER = "0x00000000000000000000000000000000000000cc"


@pytest.fixture
def now() -> int:
    return NOW


@pytest.fixture
def event() -> Callable[..., DomainEvent]:
    """Factory building a :class:`DomainEvent` with sensible defaults."""

    def _build(
        kind: str,
        entity_id: str = "1",
        *,
        actor: str | None = None,
        timestamp: int | None = None,
        transaction_hash: str | None = None,
        amounts: dict[str, str] | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> DomainEvent:
        raw: dict[str, Any] = {"kind": kind, "id": entity_id, "actor": actor}
        raw.update(amounts or {})
        raw.update({key: value for key, value in (attributes or {}).items()})
        if timestamp is not None:
            raw["timestamp"] = timestamp
        return DomainEvent(
            kind=kind,
            entity_id=entity_id,
            actor=actor,
            timestamp=timestamp,
            transaction_hash=transaction_hash,
            amounts=amounts or {},
            attributes=attributes or {},
            raw=raw,
        )

    return _build


@pytest.fixture
def posted_bounty(event) -> Callable[..., DomainEvent]:
    def _build(
        entity_id: str = "1",
        *,
        deadline: int = NOW + 3600,
        stake: str = "10",
        tip: str = "25",
        poster: str = POSTER,
        timestamp: int = NOW - 600,
    ) -> DomainEvent:
        return event(
            "posted",
            entity_id,
            actor=poster,
            timestamp=timestamp,
            amounts={"stakeAmount": stake, "tipAmount": tip},
            attributes={
                "description": "Walk the dog",
                "category": "errand",
                "deadline": str(deadline),
            },
        )

    return _build


@pytest.fixture
def created_fund(event) -> Callable[..., DomainEvent]:
    def _build(
        entity_id: str = "7",
        *,
        deadline: int = NOW + 86_400,
        contribution: str = "25",
        target: str = "250",
        organizer: str = POSTER,
    ) -> DomainEvent:
        return event(
            "created",
            entity_id,
            actor=organizer,
            timestamp=NOW - 86_400,
            transaction_hash=f"0xcreate{entity_id}",
            amounts={"contributionAmount": contribution, "targetAmount": target},
            attributes={
                "topic": "programming",
                "description": "Shared course licence",
                "deadline": str(deadline),
                "maxParticipants": "10",
            },
        )

    return _build


class FakeIndexer:
    """In-memory GraphQL indexer served through :class:`httpx.MockTransport`."""

    _COLLECTION = re.compile(r"items:\s*(\w+)\(")

    def __init__(
        self,
        records: dict[str, list[dict[str, Any]]] | None = None,
        *,
        failing: set[str] | None = None,
        errors: dict[str, Any] | None = None,
        failing_after: dict[str, int] | None = None,
    ) -> None:
        self.records = records or {}
        self.failing = failing or set()
        self.failing_after = failing_after or {}
        self.errors = errors or {}
        self.requests: list[dict[str, Any]] = []

    def _matches(self, record: dict[str, Any], where: dict[str, Any]) -> bool:
        for key, expected in where.items():
            if key.endswith("_in"):
                if record.get(key[:-3]) not in expected:
                    return False
            elif str(record.get(key, "")).lower() != str(expected).lower():
                return False
        return True

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        collection = self._COLLECTION.search(body["query"]).group(1)
        variables = body["variables"]
        self.requests.append({"collection": collection, **variables})
        served = sum(1 for seen in self.requests if seen["collection"] == collection)
        if collection in self.failing or served > self.failing_after.get(collection, served):
            return httpx.Response(502, json={"message": "bad gateway"})
        if collection in self.errors:
            return httpx.Response(200, json={"errors": self.errors[collection]})
        matching = [
            record
            for record in self.records.get(collection, [])
            if self._matches(record, variables.get("where") or {})
        ]
        page = matching[variables["skip"] : variables["skip"] + variables["first"]]
        return httpx.Response(200, json={"data": {"items": page}})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_indexer() -> Callable[..., FakeIndexer]:
    return FakeIndexer


@pytest.fixture
def test_settings(monkeypatch) -> Settings:
    settings = Settings(
        indexer_endpoints={
            "bounty": "https://indexer.test/bounty",
            "study_fund": "https://indexer.test/study",
            "expense_group": "https://indexer.test/groups",
        },
        indexer_page_size=2,
        indexer_max_records=50,
        indexer_max_concurrency=2,
        projection_timeout_seconds=5.0,
    )
    monkeypatch.setattr("app.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("app.core.config.settings", settings)
    monkeypatch.setattr("ingestion.client.settings", settings)
    monkeypatch.setattr("ingestion.service.settings", settings)
    return settings
