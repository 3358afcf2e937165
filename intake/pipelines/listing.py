"""Listing pipeline: filters -> query -> stored rows -> response records."""
from __future__ import annotations

import logging
from typing import Any

from intake.queries import FlowFilters, build_query
from intake.shaping import shape_listed_row
from intake.storage import FlowStore

logger = logging.getLogger(__name__)


async def list_flows(store: FlowStore, filters: FlowFilters) -> list[dict[str, Any]]:
    """Fetch the flows matching ``filters``, shaped for ``/get-flows``.

    Raises:
        QueryParameterError: If a date filter is malformed
        StorageError: If the select fails
        ShapingError: If a stored JSON column is unreadable
    """
    rows = await store.select(build_query(filters))
    logger.info(f"Fetched {len(rows)} flows")
    return [shape_listed_row(row) for row in rows]
