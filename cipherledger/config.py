"""
Configuration module for the confidential ledger.

Centralizes configuration with environment variable support and the
loaders for the JSON files the service starts from: weight table, trust
store and Paillier public key.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict

from phe import paillier

from .algebra import public_key_from_dict
from .economics import DEFAULT_MINIMUM_PAYMENT
from .errors import ConfigurationError
from .ledger import DEFAULT_ENVIRONMENT_ID, DEFAULT_LEDGER_ID
from .scoring import WeightTable
from .signing import TrustStore

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("CIPHERLEDGER_ENV", "dev")  # dev|stage|prod

DB_PATH = os.getenv("CIPHERLEDGER_DB_PATH", "data/cipherledger.db")
MIN_PAYMENT = int(os.getenv("CIPHERLEDGER_MIN_PAYMENT", str(DEFAULT_MINIMUM_PAYMENT)))
WITHDRAWER = os.getenv("CIPHERLEDGER_WITHDRAWER", "ledger-admin")

ENVIRONMENT_ID = os.getenv("CIPHERLEDGER_ENVIRONMENT_ID", DEFAULT_ENVIRONMENT_ID)
LEDGER_ID = os.getenv("CIPHERLEDGER_LEDGER_ID", DEFAULT_LEDGER_ID)

# Paths
WEIGHTS_PATH = os.getenv("CIPHERLEDGER_WEIGHTS_PATH", "config/weights.json")
TRUST_STORE_PATH = os.getenv("CIPHERLEDGER_TRUST_STORE_PATH", "trust/trust_store.json")
PUBLIC_KEY_PATH = os.getenv("CIPHERLEDGER_PUBLIC_KEY_PATH", "keys/paillier_public.json")

LOG_LEVEL = os.getenv("CIPHERLEDGER_LOG_LEVEL", "INFO")


# ============================================================
# Loaders
# ============================================================

def load_json(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_weight_table(path: str = WEIGHTS_PATH) -> WeightTable:
    """
    Load and validate the weight table.
    Falls back to the reference table when the file does not exist.
    """
    if not Path(path).exists():
        return WeightTable.reference()
    try:
        data = load_json(path)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"cannot read weight table {path}: {e}") from e
    return WeightTable.from_dict(data)


def load_trust_store(path: str = TRUST_STORE_PATH) -> TrustStore:
    try:
        return TrustStore(load_json(path))
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"cannot read trust store {path}: {e}") from e


def load_public_key(path: str = PUBLIC_KEY_PATH) -> paillier.PaillierPublicKey:
    try:
        return public_key_from_dict(load_json(path))
    except (OSError, ValueError, KeyError) as e:
        raise ConfigurationError(f"cannot read public key {path}: {e}") from e


# ============================================================
# Validation
# ============================================================

def validate_config() -> Dict[str, bool]:
    """
    Validate that the configuration files exist.
    Returns dict of name -> exists.
    """
    paths = {
        "weights": WEIGHTS_PATH,
        "trust_store": TRUST_STORE_PATH,
        "public_key": PUBLIC_KEY_PATH,
    }
    return {name: Path(path).exists() for name, path in paths.items()}


# ============================================================
# Feature Flags
# ============================================================

def is_production() -> bool:
    """Check if running in production mode."""
    return ENV == "prod"
