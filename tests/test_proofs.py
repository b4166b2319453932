"""Input proof verification tests."""

import unittest

from cipherledger.errors import InvalidProofError, MalformedCiphertextError
from cipherledger.hashing import HANDLE_PREFIX, ciphertext_handle
from cipherledger.proofs import InputVerifier, attest_inputs

from support import ALGEBRA, ATTESTER, INPUT_NAMES, ORACLE, encrypt_inputs, trust_store

LEDGER_ID = "ledger-under-test"


class TestInputVerifier(unittest.TestCase):

    def setUp(self):
        self.verifier = InputVerifier(ALGEBRA, trust_store(), LEDGER_ID)
        self.ciphertexts = encrypt_inputs((1, 0, 1))
        self.proof = attest_inputs(ATTESTER, LEDGER_ID, "alice", self.ciphertexts)

    def _verify(self, submitter="alice", ciphertexts=None, proof=None):
        return self.verifier.verify(
            submitter,
            self.ciphertexts if ciphertexts is None else ciphertexts,
            self.proof if proof is None else proof,
            INPUT_NAMES,
        )

    def test_valid_submission(self):
        verified = self._verify()
        self.assertEqual(list(verified.handles), list(INPUT_NAMES))
        for name in INPUT_NAMES:
            self.assertTrue(verified.handles[name].startswith(HANDLE_PREFIX))
            self.assertEqual(verified.handles[name], ciphertext_handle(self.ciphertexts[name]))
            self.assertEqual(verified.serialized[name], self.ciphertexts[name])

    def test_equivalent_encodings_share_one_handle(self):
        padded = {name: {"ciphertext": "00" + ct["ciphertext"]} for name, ct in self.ciphertexts.items()}
        self.assertEqual(attest_inputs(ATTESTER, LEDGER_ID, "alice", padded), self.proof)
        verified = self._verify(ciphertexts=padded)
        self.assertEqual(verified.serialized, self.ciphertexts)
        self.assertEqual(
            verified.handles,
            {name: ciphertext_handle(ct) for name, ct in self.ciphertexts.items()},
        )

    def test_proof_bound_to_submitter(self):
        with self.assertRaises(InvalidProofError):
            self._verify(submitter="mallory")

    def test_proof_bound_to_ledger(self):
        proof = attest_inputs(ATTESTER, "another-ledger", "alice", self.ciphertexts)
        with self.assertRaises(InvalidProofError):
            self._verify(proof=proof)

    def test_proof_bound_to_ciphertexts(self):
        swapped = dict(self.ciphertexts)
        swapped["career"], swapped["skill"] = swapped["skill"], swapped["career"]
        with self.assertRaises(InvalidProofError):
            self._verify(ciphertexts=swapped)

    def test_untrusted_attester(self):
        proof = attest_inputs(ORACLE, LEDGER_ID, "alice", self.ciphertexts)
        with self.assertRaises(InvalidProofError):
            self._verify(proof=proof)

    def test_incomplete_or_garbled_proof(self):
        signed = self.proof["sig_b64"]
        for proof in (
            {},
            {"kid": ATTESTER.kid},
            {"kid": ATTESTER.kid, "sig_b64": "not base64!"},
            {"kid": [ATTESTER.kid], "sig_b64": signed},
            {"kid": ATTESTER.kid, "sig_b64": 5},
            "proof",
        ):
            with self.subTest(proof=proof):
                with self.assertRaises(InvalidProofError):
                    self._verify(proof=proof)

    def test_missing_input(self):
        partial = {k: v for k, v in self.ciphertexts.items() if k != "education"}
        with self.assertRaises(MalformedCiphertextError):
            self._verify(ciphertexts=partial)

    def test_unexpected_input(self):
        extra = dict(self.ciphertexts, bonus=self.ciphertexts["career"])
        with self.assertRaises(MalformedCiphertextError):
            self._verify(ciphertexts=extra)

    def test_unparsable_ciphertext(self):
        broken = dict(self.ciphertexts, skill={"ciphertext": "0", "exponent": 0})
        with self.assertRaises(MalformedCiphertextError):
            self._verify(ciphertexts=broken)

    def test_ciphertexts_must_be_object(self):
        with self.assertRaises(MalformedCiphertextError):
            self._verify(ciphertexts=[1, 2, 3])


if __name__ == "__main__":
    unittest.main()
