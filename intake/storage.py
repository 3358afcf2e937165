"""Persistence gateway for the ``user_flows`` table."""
from __future__ import annotations

import logging
from typing import Any, Mapping

from fastapi import Depends
from sqlalchemy import Select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .db import get_session
from .models import UserFlow

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the database rejects an insert or a select."""
    pass


class FlowStore:
    """Insert and select flows through an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert(self, record: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Insert one row and return the stored rows.

        Args:
            record: Column values from ``build_insert_record``

        Returns:
            List holding the inserted row, generated id included

        Raises:
            StorageError: If the insert fails (the session is rolled back)
        """
        flow = UserFlow(**record)
        try:
            self.session.add(flow)
            await self.session.commit()
            await self.session.refresh(flow)
        except SQLAlchemyError as e:
            logger.error(f"Insert into {UserFlow.__tablename__} failed: {e}")
            await self.session.rollback()
            raise StorageError(f"Insert failed: {e}") from e

        logger.info(f"Stored {flow.flow_type} flow {flow.id}")
        return [flow.to_row()]

    async def select(self, query: Select) -> list[dict[str, Any]]:
        """Run a select built by ``build_query`` and return plain rows.

        Raises:
            StorageError: If the query fails
        """
        try:
            result = await self.session.execute(query)
        except SQLAlchemyError as e:
            logger.error(f"Select from {UserFlow.__tablename__} failed: {e}")
            raise StorageError(f"Select failed: {e}") from e
        return [flow.to_row() for flow in result.scalars().all()]


async def get_store(session: AsyncSession = Depends(get_session)) -> FlowStore:
    """FastAPI dependency providing a store bound to the request's session."""
    return FlowStore(session)
