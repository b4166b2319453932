"""
Hashing helpers.

All hashes are SHA-256 with lowercase hexadecimal output.
"""

import hashlib
from typing import Any, Dict, Optional, Union

from .canonicalization import canonicalize

HANDLE_PREFIX = "ct:sha256:"


def sha256_hex(data: Union[bytes, str]) -> str:
    """Compute SHA-256 hash and return as hex string."""
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).hexdigest()


def ciphertext_handle(serialized: Dict[str, Any]) -> str:
    """
    Compute the opaque handle of a serialized ciphertext.

    handle = "ct:sha256:" + SHA-256(CJE(serialized))
    """
    return HANDLE_PREFIX + sha256_hex(canonicalize(serialized))


def payload_hash(payload: Dict[str, Any]) -> str:
    """Hash of an event payload in canonical form."""
    return sha256_hex(canonicalize(payload))


def chain_entry_hash(prev_entry_hash: Optional[str], entry_payload_hash: str) -> str:
    """
    Compute the hash chain entry hash.

    Links each event log entry to its predecessor; the first entry has
    no predecessor and hashes the payload hash alone.
    """
    data = (prev_entry_hash or "").encode("utf-8") + entry_payload_hash.encode("utf-8")
    return sha256_hex(data)
