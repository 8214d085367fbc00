"""Deterministic hashing over plain data structures."""

import hashlib
import json
from decimal import Decimal
from typing import Any


def _default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def canonical_json(value: Any) -> str:
    """Serialize with sorted keys and no whitespace so equal data hashes equally."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=_default)


def md5_hex(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def content_hash(*parts: Any) -> str:
    """SHA-256 over the canonical JSON of ``parts``."""
    return sha256_hex(canonical_json(list(parts)))
