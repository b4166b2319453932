"""Shared key material and submission builders for the test suite."""

from typing import Dict, Sequence, Tuple

from cipherledger.algebra import Ciphertext, PaillierAlgebra, generate_keypair
from cipherledger.ledger import ConfidentialLedger
from cipherledger.proofs import attest_inputs
from cipherledger.signing import DECRYPTION_ORACLES, INPUT_ATTESTERS, KeyPair, TrustStore

# Short modulus: fast, and sufficient for functional tests.
PUBLIC_KEY, PRIVATE_KEY = generate_keypair(n_length=512)
ALGEBRA = PaillierAlgebra(PUBLIC_KEY)

ATTESTER = KeyPair.generate("attester-test")
ORACLE = KeyPair.generate("oracle-test")

FEE = 10 ** 15
WITHDRAWER = "treasury"
INPUT_NAMES = ("career", "skill", "education")


def trust_store() -> TrustStore:
    trust = TrustStore()
    trust.add(INPUT_ATTESTERS, ATTESTER.kid, ATTESTER.public_b64())
    trust.add(DECRYPTION_ORACLES, ORACLE.kid, ORACLE.public_b64())
    return trust


def make_ledger(**kwargs) -> ConfidentialLedger:
    kwargs.setdefault("withdrawer", WITHDRAWER)
    kwargs.setdefault("minimum_payment", FEE)
    return ConfidentialLedger(ALGEBRA, trust_store(), **kwargs)


def decrypt(ct: Ciphertext) -> int:
    return PRIVATE_KEY.decrypt(ct.value)


def encrypt_inputs(values: Sequence[int], names: Sequence[str] = INPUT_NAMES) -> Dict[str, dict]:
    return {name: ALGEBRA.serialize(ALGEBRA.encrypt(int(v))) for name, v in zip(names, values)}


def build_submission(
    owner: str,
    values: Sequence[int] = (1, 1, 0),
    ledger_id: str = "cipherledger-local",
) -> Tuple[Dict[str, dict], Dict[str, str]]:
    ciphertexts = encrypt_inputs(values)
    return ciphertexts, attest_inputs(ATTESTER, ledger_id, owner, ciphertexts)


def submit(ledger: ConfidentialLedger, owner: str, values: Sequence[int] = (1, 1, 0), payment: int = FEE) -> int:
    ciphertexts, proof = build_submission(owner, values, ledger.ledger_id)
    return ledger.create_record(owner, ciphertexts, proof, payment)
