"""
hashing.py — Deterministic content hash over a calculation input set.

The hash is persisted as the version's `calc_hash` and lets a later preview
or audit detect input drift. Keys are sorted at every nesting level, so two
logically equal inputs hash the same whatever order their keys were built in.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel


def to_jsonable(value: Any) -> Any:
    """Normalize dataclasses, pydantic models, enums, dates and tuples to plain JSON values."""
    if isinstance(value, BaseModel):
        return to_jsonable(value.model_dump(mode="json"))
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def canonical_json(inputs: Any) -> str:
    return json.dumps(
        to_jsonable(inputs),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def calc_hash(inputs: Mapping[str, Any]) -> str:
    """SHA-256 (lowercase hex) of the canonical JSON form of `inputs`."""
    return hashlib.sha256(canonical_json(inputs).encode("utf-8")).hexdigest()
