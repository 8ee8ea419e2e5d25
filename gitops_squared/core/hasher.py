"""Canonical hashing helpers for content addressing.

Registry digests use the OCI ``sha256:<hex>`` form.  Manifests are
serialized canonically so the same logical manifest always produces the
same digest.
"""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any

_DIGEST_RE = re.compile(r"^sha256:[a-f0-9]{64}$")


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes — deterministic, sorted, compact."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def content_digest(data: bytes) -> str:
    """Return the OCI digest string ("sha256:<hex>") for raw bytes."""
    return f"sha256:{sha256_hex(data)}"


def is_digest(reference: str) -> bool:
    """Whether a reference is a full sha256 digest rather than a tag."""
    return bool(_DIGEST_RE.match(reference))


def verify_digest(data: bytes, expected: str) -> bool:
    """Re-hash data and compare against an OCI digest string."""
    return content_digest(data) == expected
