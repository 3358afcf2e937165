"""Shared fixtures: an in-memory flow store and a Slack API double."""
from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from intake.api import app
from intake.models import UserFlow
from intake.notifier import Notifier, SlackClient, get_notifier
from intake.storage import StorageError, get_store

COLUMNS = [column.name for column in UserFlow.__table__.columns]

SLACK_OK: dict[str, dict[str, Any]] = {
    "users.lookupByEmail": {"ok": True, "user": {"id": "U123"}},
    "conversations.invite": {"ok": True, "channel": {"id": "C999"}},
    "chat.postMessage": {"ok": True, "channel": "C999", "ts": "1700000000.000100"},
}


class FakeFlowStore:
    """Stands in for FlowStore; keeps rows in a list."""

    def __init__(self, fail_with: str | None = None):
        self.rows: list[dict[str, Any]] = []
        self.queries: list[Any] = []
        self.fail_with = fail_with

    async def insert(self, record):
        if self.fail_with:
            raise StorageError(self.fail_with)
        row = dict.fromkeys(COLUMNS)
        row.update(record)
        row["id"] = len(self.rows) + 1
        self.rows.append(row)
        return [dict(row)]

    async def select(self, query):
        if self.fail_with:
            raise StorageError(self.fail_with)
        self.queries.append(query)
        return [dict(row) for row in self.rows]


class SlackRecorder:
    """MockTransport handler answering Slack Web API calls from a table."""

    def __init__(self, overrides: dict[str, dict[str, Any] | Callable] | None = None):
        self.responses = {**SLACK_OK, **(overrides or {})}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        if request.method == "POST":
            body = json.loads(request.content)
        else:
            body = dict(request.url.params)
        self.calls.append((method, body))

        answer = self.responses[method]
        if callable(answer):
            return answer(request)
        return httpx.Response(200, json=answer)

    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]

    def bodies(self, method: str) -> list[dict[str, Any]]:
        return [body for name, body in self.calls if name == method]


def make_notifier(recorder: SlackRecorder) -> Notifier:
    client = SlackClient(
        "xoxb-test",
        base_url="https://slack.test/api/",
        transport=httpx.MockTransport(recorder),
    )
    return Notifier(client, channel_id="C999", default_user_id="UDEFAULT")


@pytest.fixture
def store() -> FakeFlowStore:
    return FakeFlowStore()


@pytest.fixture
def slack() -> SlackRecorder:
    return SlackRecorder()


@pytest.fixture
def notifier(slack) -> Notifier:
    return make_notifier(slack)


@pytest.fixture
def client(store, notifier):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()
