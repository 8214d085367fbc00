"""Utility helpers shared across layers."""

from .formatting import format_bytes, format_price, quantize_money
from .hashing import canonical_json, content_hash, md5_hex, sha256_hex

__all__ = [
    "canonical_json",
    "content_hash",
    "format_bytes",
    "format_price",
    "md5_hex",
    "quantize_money",
    "sha256_hex",
]
