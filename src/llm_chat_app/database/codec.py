"""Codec for list-valued columns stored as JSON text.

Applied only at the repository edge: records handed to callers always carry
real lists (or ``None``), never the serialized text.
"""

from __future__ import annotations

import json


def encode_list(values: list[str] | None) -> str | None:
    if values is None:
        return None
    return json.dumps(list(values), ensure_ascii=False)


def decode_list(text: str | None) -> list[str] | None:
    if text is None:
        return None
    decoded = json.loads(text)
    if not isinstance(decoded, list):
        raise ValueError(f"Expected a JSON list, got {type(decoded).__name__}")
    return decoded
