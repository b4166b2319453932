"""
Encrypted Value Algebra.

The ledger never sees plaintext. It manipulates ciphertexts only through
three primitives:

    enc_const(value)        -> ciphertext of a public constant
    enc_add(a, b)           -> ciphertext of a + b
    enc_select(cond, a, b)  -> ciphertext of (cond ? a : b)

``PaillierAlgebra`` supplies them on top of python-paillier (``phe``).
Paillier is additively homomorphic: ciphertexts can be added together and
multiplied by public integers, but not by each other. Selection is
therefore evaluated as ``cond * (a - b) + b`` and is only defined when both
branches are public constants, which is the only shape the scoring engine
produces.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from phe import paillier

from .errors import AlgebraError, MalformedCiphertextError


@dataclass(frozen=True)
class Ciphertext:
    """
    Opaque encrypted value.

    ``public_value`` is populated only for ciphertexts created by
    ``enc_const`` (and sums of those); it is never derived from submitted
    data.
    """
    value: Any
    public_value: Optional[int] = None

    def is_public(self) -> bool:
        return self.public_value is not None


class EncryptedAlgebra(ABC):
    """Interface every algebra backend must provide."""

    @abstractmethod
    def enc_const(self, value: int) -> Ciphertext:
        pass

    @abstractmethod
    def enc_add(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        pass

    @abstractmethod
    def enc_select(self, cond: Ciphertext, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        pass

    @abstractmethod
    def encrypt(self, value: int) -> Ciphertext:
        """Fresh randomized encryption, used by submitters."""
        pass

    @abstractmethod
    def serialize(self, ct: Ciphertext) -> Dict[str, Any]:
        pass

    @abstractmethod
    def deserialize(self, data: Dict[str, Any]) -> Ciphertext:
        """Parse and range-check a serialized ciphertext."""
        pass


class PaillierAlgebra(EncryptedAlgebra):
    """Paillier backend."""

    def __init__(self, public_key: paillier.PaillierPublicKey):
        self._public_key = public_key

    @property
    def public_key(self) -> paillier.PaillierPublicKey:
        return self._public_key

    def enc_const(self, value: int) -> Ciphertext:
        _require_int(value, "constant")
        # r = 1: deterministic encoding of a public value
        return Ciphertext(self._public_key.encrypt(value, r_value=1), public_value=value)

    def enc_add(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        self._check_operand(a)
        self._check_operand(b)
        public = None
        if a.is_public() and b.is_public():
            public = a.public_value + b.public_value
        return Ciphertext(a.value + b.value, public_value=public)

    def enc_select(self, cond: Ciphertext, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        self._check_operand(cond)
        if not (a.is_public() and b.is_public()):
            raise AlgebraError("Paillier selection requires public constant branches")
        delta = a.public_value - b.public_value
        return Ciphertext(cond.value * delta + b.public_value)

    def encrypt(self, value: int) -> Ciphertext:
        _require_int(value, "plaintext")
        return Ciphertext(self._public_key.encrypt(value))

    def serialize(self, ct: Ciphertext) -> Dict[str, Any]:
        self._check_operand(ct)
        return {
            "ciphertext": str(ct.value.ciphertext(be_secure=True)),
            "exponent": ct.value.exponent,
        }

    def deserialize(self, data: Dict[str, Any]) -> Ciphertext:
        if not isinstance(data, dict):
            raise MalformedCiphertextError("ciphertext must be an object")
        unknown = set(data) - {"ciphertext", "exponent"}
        if unknown:
            raise MalformedCiphertextError(f"unexpected ciphertext fields: {sorted(unknown)}")
        raw = data.get("ciphertext")
        exponent = data.get("exponent", 0)
        if not isinstance(raw, str) or not (raw.isascii() and raw.isdigit()):
            raise MalformedCiphertextError("ciphertext must be a decimal string")
        if type(exponent) is not int or exponent != 0:
            raise MalformedCiphertextError("only integer ciphertexts (exponent 0) are accepted")
        value = int(raw)
        if not 0 < value < self._public_key.nsquare:
            raise MalformedCiphertextError("ciphertext outside the key's range")
        return Ciphertext(paillier.EncryptedNumber(self._public_key, value, 0))

    def _check_operand(self, ct: Ciphertext) -> None:
        if not isinstance(ct, Ciphertext) or not isinstance(ct.value, paillier.EncryptedNumber):
            raise AlgebraError("operand is not a Paillier ciphertext")
        if ct.value.public_key != self._public_key:
            raise AlgebraError("operand was encrypted under a different key")


def _require_int(value: Any, what: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise AlgebraError(f"{what} must be an integer")


def generate_keypair(n_length: int = 2048) -> Tuple[paillier.PaillierPublicKey, paillier.PaillierPrivateKey]:
    """Generate a Paillier public/private keypair."""
    return paillier.generate_paillier_keypair(n_length=n_length)


def public_key_to_dict(public_key: paillier.PaillierPublicKey) -> Dict[str, str]:
    return {"scheme": "paillier", "n": str(public_key.n)}


def public_key_from_dict(data: Dict[str, Any]) -> paillier.PaillierPublicKey:
    if data.get("scheme", "paillier") != "paillier":
        raise ValueError(f"unsupported scheme: {data.get('scheme')}")
    return paillier.PaillierPublicKey(int(data["n"]))


def private_key_to_dict(private_key: paillier.PaillierPrivateKey) -> Dict[str, str]:
    return {
        "scheme": "paillier",
        "n": str(private_key.public_key.n),
        "p": str(private_key.p),
        "q": str(private_key.q),
    }


def private_key_from_dict(data: Dict[str, Any]) -> paillier.PaillierPrivateKey:
    public_key = paillier.PaillierPublicKey(int(data["n"]))
    return paillier.PaillierPrivateKey(public_key, int(data["p"]), int(data["q"]))
