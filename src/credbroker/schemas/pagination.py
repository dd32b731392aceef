"""Cursor-based pagination over (created_at, id).

Cursors are opaque to clients: a url-safe base64 JSON blob holding the
boundary row's creation time and id. Ids are compared as strings, which
breaks ties between rows created in the same instant.
"""

from __future__ import annotations

import base64
import json
from datetime import datetime

from pydantic import BaseModel


class PaginationMeta(BaseModel):
    has_next: bool
    has_prev: bool


class PaginationLinks(BaseModel):
    first: str
    next: str | None = None


def encode_cursor(created_at: datetime, id: str) -> str:
    """Encode the boundary row of a page as an opaque cursor."""
    payload = json.dumps({"c": created_at.isoformat(), "i": id})
    return base64.urlsafe_b64encode(payload.encode()).decode()


def decode_cursor(cursor: str) -> tuple[datetime, str]:
    """Decode a cursor produced by ``encode_cursor``.

    Raises:
        ValueError: If the cursor is malformed.
    """
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode()).decode())
        return datetime.fromisoformat(payload["c"]), str(payload["i"])
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"Invalid pagination cursor: {cursor}") from exc
