#!/usr/bin/env python3
"""
cipherledger Command Line Interface

Usage:
    cipherledger keygen --output-dir <dir>
    cipherledger check-weights --weights <file>
    cipherledger encrypt --public-key <file> --attester-key <file> --owner <id> --input career=true ...
    cipherledger verify-events --db <file>
    cipherledger demo
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Dict, List, Optional


def load_json(path: str) -> dict:
    """Load JSON from file."""
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def save_json(data: dict, path: Path):
    """Save JSON to file, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2)


def _parse_inputs(pairs: List[str]) -> Dict[str, bool]:
    values = {}
    for pair in pairs:
        name, sep, raw = pair.partition("=")
        if not sep or raw.lower() not in ("true", "false", "1", "0"):
            raise ValueError(f"expected name=true|false, got {pair!r}")
        values[name] = raw.lower() in ("true", "1")
    return values


def cmd_keygen(args):
    """Generate Paillier keys, attester and oracle keys, trust store and weights."""
    from cipherledger.algebra import generate_keypair, private_key_to_dict, public_key_to_dict
    from cipherledger.scoring import WeightTable
    from cipherledger.signing import DECRYPTION_ORACLES, INPUT_ATTESTERS, KeyPair, TrustStore

    out = Path(args.output_dir)
    public_key, private_key = generate_keypair(n_length=args.key_bits)
    attester = KeyPair.generate(args.attester_kid)
    oracle = KeyPair.generate(args.oracle_kid)

    trust = TrustStore()
    trust.add(INPUT_ATTESTERS, attester.kid, attester.public_b64())
    trust.add(DECRYPTION_ORACLES, oracle.kid, oracle.public_b64())

    save_json(public_key_to_dict(public_key), out / "keys" / "paillier_public.json")
    save_json(private_key_to_dict(private_key), out / "secrets" / "paillier_private.json")
    save_json(attester.to_dict(), out / "secrets" / "attester_key.json")
    save_json(oracle.to_dict(), out / "secrets" / "oracle_key.json")
    save_json(trust.to_dict(), out / "trust" / "trust_store.json")
    weights = out / "config" / "weights.json"
    if not weights.exists():
        save_json(WeightTable.reference().to_dict(), weights)

    print(f"Generated keys, trust store and weights under {out}")
    return 0


def cmd_check_weights(args):
    """Validate a weight table against its output width."""
    from cipherledger.errors import ConfigurationError
    from cipherledger.scoring import WeightTable

    try:
        table = WeightTable.from_dict(load_json(args.weights))
    except ConfigurationError as e:
        print(f"✗ {e.message}", file=sys.stderr)
        return 1
    print(f"✓ {len(table.inputs)} inputs, score range {table.base}..{table.max_score} "
          f"(capacity {table.capacity})")
    return 0


def cmd_encrypt(args):
    """Build a submission: encrypted boolean inputs plus their attestation."""
    from cipherledger.algebra import PaillierAlgebra, public_key_from_dict
    from cipherledger.proofs import attest_inputs
    from cipherledger.signing import KeyPair

    algebra = PaillierAlgebra(public_key_from_dict(load_json(args.public_key)))
    attester = KeyPair.from_dict(load_json(args.attester_key))
    try:
        values = _parse_inputs(args.input)
    except ValueError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1

    ciphertexts = {name: algebra.serialize(algebra.encrypt(int(v))) for name, v in values.items()}
    submission = {
        "owner": args.owner,
        "ciphertexts": ciphertexts,
        "proof": attest_inputs(attester, args.ledger_id, args.owner, ciphertexts),
        "payment": args.payment,
    }
    if args.output:
        save_json(submission, Path(args.output))
        print(f"Submission saved to: {args.output}")
    else:
        print(json.dumps(submission, indent=2))
    return 0


def cmd_verify_events(args):
    """Recompute the event log hash chain of a ledger database."""
    from cipherledger.db import LedgerDatabase
    from cipherledger.events import EventLog

    if not Path(args.db).exists():
        print(f"✗ no database at {args.db}", file=sys.stderr)
        return 1
    db = LedgerDatabase(args.db)
    try:
        valid, reason = EventLog(db).verify_chain()
    finally:
        db.close()
    if valid:
        print("✓ event chain intact")
        return 0
    print(f"✗ {reason}")
    return 1


def cmd_demo(args):
    """Run an in-memory submission, request and fulfillment round trip."""
    from cipherledger.algebra import PaillierAlgebra, generate_keypair
    from cipherledger.ledger import ConfidentialLedger
    from cipherledger.oracle import LocalDecryptionOracle
    from cipherledger.proofs import attest_inputs
    from cipherledger.signing import DECRYPTION_ORACLES, INPUT_ATTESTERS, KeyPair, TrustStore

    print("=" * 60)
    print("cipherledger demonstration")
    print("=" * 60)

    public_key, private_key = generate_keypair(n_length=1024)
    algebra = PaillierAlgebra(public_key)
    attester = KeyPair.generate("attester-demo")
    oracle_key = KeyPair.generate("oracle-demo")
    trust = TrustStore()
    trust.add(INPUT_ATTESTERS, attester.kid, attester.public_b64())
    trust.add(DECRYPTION_ORACLES, oracle_key.kid, oracle_key.public_b64())

    ledger = ConfidentialLedger(algebra, trust, withdrawer="treasury", minimum_payment=10 ** 15)
    oracle = LocalDecryptionOracle(private_key, algebra, ledger.store, oracle_key, ledger.fulfill_decryption)
    oracle.attach(ledger.bus)

    inputs = {"career": 1, "skill": 1, "education": 0}
    ciphertexts = {name: algebra.serialize(algebra.encrypt(v)) for name, v in inputs.items()}
    proof = attest_inputs(attester, ledger.ledger_id, "alice", ciphertexts)
    record_id = ledger.create_record("alice", ciphertexts, proof, 10 ** 15)
    print(f"\nRecord {record_id} submitted: {ledger.get_record_metadata(record_id)}")

    ledger.request_decrypt(record_id, "alice")
    print(f"State after request: {ledger.decryption_state(record_id).value}")
    oracle.process_pending()
    print(f"Decrypted score: {ledger.retrieve_decrypt(record_id, 'alice')}")
    print(f"Withdrawn: {ledger.withdraw('treasury')}")
    print(f"Event chain: {ledger.verify_event_chain()}")
    ledger.close()
    return 0


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description="cipherledger CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cipherledger keygen -d .
  cipherledger check-weights -w config/weights.json
  cipherledger encrypt -p keys/paillier_public.json -a secrets/attester_key.json -O alice -i career=true -i skill=false -i education=true
  cipherledger verify-events --db data/cipherledger.db
  cipherledger demo
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    keygen_parser = subparsers.add_parser("keygen", help="Generate keys, trust store and weights")
    keygen_parser.add_argument("-d", "--output-dir", default=".", help="Root directory for generated files")
    keygen_parser.add_argument("--key-bits", type=int, default=2048, help="Paillier modulus size")
    keygen_parser.add_argument("--attester-kid", default="attester-01")
    keygen_parser.add_argument("--oracle-kid", default="oracle-01")

    weights_parser = subparsers.add_parser("check-weights", help="Validate a weight table")
    weights_parser.add_argument("-w", "--weights", required=True, help="Weight table JSON file")

    encrypt_parser = subparsers.add_parser("encrypt", help="Encrypt and attest a submission")
    encrypt_parser.add_argument("-p", "--public-key", required=True, help="Paillier public key JSON file")
    encrypt_parser.add_argument("-a", "--attester-key", required=True, help="Attester private key JSON file")
    encrypt_parser.add_argument("-O", "--owner", required=True, help="Submitting identity")
    encrypt_parser.add_argument("-i", "--input", action="append", default=[], help="name=true|false")
    encrypt_parser.add_argument("-l", "--ledger-id", default="cipherledger-local")
    encrypt_parser.add_argument("--payment", type=int, default=10 ** 15)
    encrypt_parser.add_argument("-o", "--output", help="Output file for the submission")

    events_parser = subparsers.add_parser("verify-events", help="Verify the event log hash chain")
    events_parser.add_argument("--db", required=True, help="Ledger SQLite database")

    subparsers.add_parser("demo", help="Run demonstration")

    args = parser.parse_args(argv)

    commands = {
        "keygen": cmd_keygen,
        "check-weights": cmd_check_weights,
        "encrypt": cmd_encrypt,
        "verify-events": cmd_verify_events,
        "demo": cmd_demo,
    }
    if args.command not in commands:
        parser.print_help()
        return 2
    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
