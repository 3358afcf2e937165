"""Tests for FlowStore with a mocked async session."""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from intake.models import UserFlow
from intake.queries import FlowFilters, build_query
from intake.storage import FlowStore, StorageError

SUBMITTED_AT = datetime(2024, 1, 15, 10, tzinfo=timezone.utc)


@pytest.fixture
def session():
    mock = MagicMock()
    mock.commit = AsyncMock()
    mock.rollback = AsyncMock()
    mock.execute = AsyncMock()

    async def assign_id(flow):
        flow.id = 5

    mock.refresh = AsyncMock(side_effect=assign_id)
    return mock


class TestFlowStore:
    """Tests for FlowStore."""

    @pytest.mark.asyncio
    async def test_insert_returns_stored_row(self, session):
        store = FlowStore(session)

        rows = await store.insert({
            "flow_type": "update-config",
            "update_page_details": {"page": "home"},
            "submitted_at": SUBMITTED_AT,
        })

        assert rows == [{
            "id": 5,
            "flow_type": "update-config",
            "bespoke_option": None,
            "agency_counter_inputs": None,
            "landing_page_selection": None,
            "tailored_questions": None,
            "general_questions": None,
            "update_page_details": {"page": "home"},
            "submitted_at": SUBMITTED_AT,
        }]
        session.add.assert_called_once()
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_insert_failure_rolls_back(self, session):
        session.commit.side_effect = OperationalError("INSERT", {}, Exception("db down"))
        store = FlowStore(session)

        with pytest.raises(StorageError, match="Insert failed"):
            await store.insert({"flow_type": "mystery", "submitted_at": SUBMITTED_AT})

        session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_select_returns_rows(self, session):
        result = MagicMock()
        result.scalars.return_value.all.return_value = [
            UserFlow(id=1, flow_type="bespoke-demo", bespoke_option="full", submitted_at=SUBMITTED_AT),
        ]
        session.execute.return_value = result
        store = FlowStore(session)

        rows = await store.select(build_query(FlowFilters()))

        assert [row["bespoke_option"] for row in rows] == ["full"]
        assert rows[0]["general_questions"] is None

    @pytest.mark.asyncio
    async def test_select_failure_raises_storage_error(self, session):
        session.execute.side_effect = OperationalError("SELECT", {}, Exception("db down"))
        store = FlowStore(session)

        with pytest.raises(StorageError, match="Select failed"):
            await store.select(build_query(FlowFilters()))
