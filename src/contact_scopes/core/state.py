"""Read access to the JSONB key-value ``state`` table holding per-application blobs.

The table is owned and written by the permission service; this package only
reads it.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import asyncpg

logger = logging.getLogger(__name__)

DEFAULT_STATE_TABLE = "state"


def decode_jsonb(val: Any) -> Any:
    """Decode a JSONB column value returned by asyncpg.

    Without a registered codec asyncpg hands JSONB back as text. A value that
    still decodes to a string holding JSON was double-encoded by its writer
    and gets one more pass.
    """
    if not isinstance(val, str):
        return val
    val = json.loads(val)
    if isinstance(val, str):
        logger.warning("Double-encoded JSONB state value; applying second decode pass")
        try:
            val = json.loads(val)
        except ValueError:
            logger.debug("Second decode pass failed; keeping string value")
    return val


async def state_get(pool: asyncpg.Pool, key: str) -> Any | None:
    """Return the decoded value stored under *key*, or ``None`` if the key does not exist."""
    async with pool.acquire() as conn:
        row = await conn.fetchval(
            f"SELECT value FROM {DEFAULT_STATE_TABLE} WHERE key = $1",
            key,
        )
    if row is None:
        return None
    return decode_jsonb(row)
