"""
Performance Data Gateway — durable storage for telemetry samples.

Wraps the single Supabase insert the ingest path needs. The supabase-py
client is synchronous, so the call runs in a worker thread via
asyncio.to_thread and the event loop keeps serving other connections
while the database responds.
"""

import asyncio
import logging

from app.db.supabase_client import get_service_client
from app.models.telemetry import PERFORMANCE_TABLE

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """The database did not store the row."""


def _insert_row(row: dict) -> dict:
    try:
        client = get_service_client()
        result = client.table(PERFORMANCE_TABLE).insert(row).execute()
    except Exception as exc:
        raise PersistenceError(str(exc)) from exc

    if not result.data:
        raise PersistenceError("no data returned from database")
    return result.data[0]


async def insert_performance_row(row: dict) -> dict:
    """
    Insert one telemetry row and return the stored record.

    Raises:
        PersistenceError: The insert failed or returned nothing.
    """
    return await asyncio.to_thread(_insert_row, row)
