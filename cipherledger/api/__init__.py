"""HTTP surface of the confidential ledger."""
