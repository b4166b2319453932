"""
Input proofs.

Every externally supplied ciphertext arrives with a proof of
well-formedness. Here the proof is an attestation: a trusted input
attester, having checked that each ciphertext encrypts a boolean under the
ledger's key, signs the canonical statement

    {"ledger_id": ..., "submitter": ..., "inputs": {name: handle, ...}}

The verifier never trusts handles supplied by the caller. It deserializes
each ciphertext through the algebra backend, recomputes its handle and
rebuilds the statement, so a proof only covers the exact ciphertexts, the
exact submitter and this ledger instance.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Sequence

from .algebra import Ciphertext, EncryptedAlgebra
from .canonicalization import canonicalize
from .errors import InvalidProofError, MalformedCiphertextError
from .hashing import ciphertext_handle
from .signing import INPUT_ATTESTERS, KeyPair, TrustStore


@dataclass
class VerifiedInputs:
    """Ciphertexts that passed verification, in the expected input order."""
    ciphertexts: Dict[str, Ciphertext]
    serialized: Dict[str, Dict[str, Any]]
    handles: Dict[str, str]


def input_statement(ledger_id: str, submitter: str, handles: Mapping[str, str]) -> bytes:
    return canonicalize({
        "ledger_id": ledger_id,
        "submitter": submitter,
        "inputs": dict(handles),
    })


def canonical_ciphertext(serialized: Mapping[str, Any]) -> Dict[str, Any]:
    """One wire form per integer ciphertext: no leading zeros, explicit exponent."""
    return {"ciphertext": str(int(serialized["ciphertext"])), "exponent": 0}


def attest_inputs(
    attester: KeyPair,
    ledger_id: str,
    submitter: str,
    serialized: Mapping[str, Dict[str, Any]],
) -> Dict[str, str]:
    """Attester side: produce the proof for a set of serialized ciphertexts."""
    handles = {name: ciphertext_handle(canonical_ciphertext(ct)) for name, ct in serialized.items()}
    kid, sig_b64 = attester.sign(input_statement(ledger_id, submitter, handles))
    return {"kid": kid, "sig_b64": sig_b64}


class InputVerifier:
    """Checks submitted ciphertexts and their proof before acceptance."""

    def __init__(self, algebra: EncryptedAlgebra, trust_store: TrustStore, ledger_id: str):
        self._algebra = algebra
        self._trust_store = trust_store
        self._ledger_id = ledger_id

    def verify(
        self,
        submitter: str,
        ciphertexts: Mapping[str, Any],
        proof: Mapping[str, Any],
        expected_inputs: Sequence[str],
    ) -> VerifiedInputs:
        """
        Validate shape, well-formedness and proof of a submission.

        Raises:
            MalformedCiphertextError: missing/extra inputs or unparsable ciphertext
            InvalidProofError: missing, untrusted or non-matching attestation
        """
        if not isinstance(ciphertexts, Mapping):
            raise MalformedCiphertextError("ciphertexts must be an object keyed by input name")

        expected = list(expected_inputs)
        missing = [name for name in expected if name not in ciphertexts]
        extra = sorted(set(ciphertexts) - set(expected))
        if missing or extra:
            raise MalformedCiphertextError(
                f"input set mismatch: missing={missing} unexpected={extra}"
            )

        parsed: Dict[str, Ciphertext] = {}
        normalized: Dict[str, Dict[str, Any]] = {}
        handles: Dict[str, str] = {}
        for name in expected:
            raw = ciphertexts[name]
            parsed[name] = self._algebra.deserialize(raw)
            normalized[name] = canonical_ciphertext(raw)
            handles[name] = ciphertext_handle(normalized[name])

        if not isinstance(proof, Mapping):
            raise InvalidProofError("proof must be an object")
        kid = proof.get("kid")
        sig_b64 = proof.get("sig_b64")
        if not isinstance(kid, str) or not isinstance(sig_b64, str) or not kid or not sig_b64:
            raise InvalidProofError("proof requires kid and sig_b64")

        statement = input_statement(self._ledger_id, submitter, handles)
        if not self._trust_store.verify(INPUT_ATTESTERS, kid, sig_b64, statement):
            raise InvalidProofError(f"attestation by {kid!r} does not verify")

        return VerifiedInputs(
            ciphertexts=parsed,
            serialized=normalized,
            handles=handles,
        )
