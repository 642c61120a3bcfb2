"""Wire encoding for batches of records.

Collectors accept a batch either as a form field holding base64-encoded JSON
or as a raw JSON array. Both representations live here so every consumer
encodes identically.
"""

from __future__ import annotations

import base64
import json
from typing import Any
from urllib.parse import urlencode

Record = dict[str, Any]

FORM_FIELD = "data"


def encode(batch: list[Record]) -> str:
    """Serialize a batch to base64-of-JSON.

    Args:
        batch: Ordered records to encode.

    Returns:
        ASCII text safe to embed in a form body or a command line.
    """
    raw = json.dumps(batch, separators=(",", ":"), ensure_ascii=False)
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def decode(payload: str) -> list[Record]:
    """Inverse of :func:`encode`.

    Raises:
        ValueError: If the payload is not valid base64 or not a JSON array.
    """
    raw = base64.b64decode(payload.encode("ascii"), validate=True)
    batch = json.loads(raw.decode("utf-8"))
    if not isinstance(batch, list):
        raise ValueError("Encoded payload is not a JSON array")
    return batch


def form_body(batch: list[Record]) -> str:
    """Build an ``application/x-www-form-urlencoded`` body for a batch."""
    return urlencode({FORM_FIELD: encode(batch)})


def json_body(batch: list[Record]) -> str:
    """Serialize a batch as a plain JSON array (file sink, bulk import)."""
    return json.dumps(batch, ensure_ascii=False)
