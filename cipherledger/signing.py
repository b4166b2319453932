"""
Ed25519 signing (RFC 8032) for input attestations and oracle fulfillments.

Trust is expressed as a trust store: a mapping of key id to base64 public
key, split by role.

    {
        "input_attesters":    {"attester-01": "<b64 pubkey>"},
        "decryption_oracles": {"oracle-01":   "<b64 pubkey>"}
    }
"""

import base64
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

INPUT_ATTESTERS = "input_attesters"
DECRYPTION_ORACLES = "decryption_oracles"
TRUST_ROLES = (INPUT_ATTESTERS, DECRYPTION_ORACLES)


def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode('ascii')


def b64d(s: str) -> bytes:
    return base64.b64decode(s.encode('ascii'), validate=True)


@dataclass
class KeyPair:
    """Ed25519 key pair with its key id."""
    kid: str
    signing_key: bytes
    verify_key: bytes

    @classmethod
    def generate(cls, kid: str) -> 'KeyPair':
        sk = SigningKey.generate()
        return cls(kid=kid, signing_key=bytes(sk), verify_key=bytes(sk.verify_key))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'KeyPair':
        sk = SigningKey(b64d(data["private_key_b64"]))
        return cls(kid=data["kid"], signing_key=bytes(sk), verify_key=bytes(sk.verify_key))

    def to_dict(self) -> Dict[str, str]:
        """Private key file format."""
        return {"kid": self.kid, "private_key_b64": b64e(self.signing_key)}

    def public_b64(self) -> str:
        return b64e(self.verify_key)

    def sign(self, payload: bytes) -> Tuple[str, str]:
        """Sign a payload and return (kid, signature_b64)."""
        sig = SigningKey(self.signing_key).sign(payload).signature
        return self.kid, b64e(sig)


def verify_ed25519(sig_b64: str, message: bytes, pub_b64: str) -> bool:
    """Verify an Ed25519 signature; any decoding problem counts as invalid."""
    try:
        VerifyKey(b64d(pub_b64)).verify(message, b64d(sig_b64))
        return True
    except (BadSignatureError, ValueError, TypeError):
        return False


class TrustStore:
    """Read-only view over the role-partitioned trusted keys."""

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        data = data or {}
        self._keys: Dict[str, Dict[str, str]] = {
            role: dict(data.get(role, {})) for role in TRUST_ROLES
        }

    def public_key(self, role: str, kid: str) -> Optional[str]:
        if role not in self._keys:
            raise ValueError(f"Unknown trust role: {role}")
        return self._keys[role].get(kid)

    def verify(self, role: str, kid: str, sig_b64: str, message: bytes) -> bool:
        """True only if ``kid`` is trusted for ``role`` and the signature checks."""
        pub = self.public_key(role, kid)
        if not pub or not isinstance(sig_b64, str):
            return False
        return verify_ed25519(sig_b64, message, pub)

    def add(self, role: str, kid: str, pub_b64: str) -> None:
        if role not in self._keys:
            raise ValueError(f"Unknown trust role: {role}")
        self._keys[role][kid] = pub_b64

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        return {role: dict(keys) for role, keys in self._keys.items()}
