"""
OpenLedger - signed-message authorization for asset ledgers.

Key features:
- Deterministic canonical messages hashed with Keccak-256
- Recoverable secp256k1 signatures; the signer is recovered, not claimed
- Per-account nonces that can be consumed exactly once
- Fungible balances and non-fungible notes with batch lifecycle
- Record queries with per-account visibility
"""

__version__ = "0.4.0"
__all__ = [
    "errors",
    "crypto_utils",
    "wallet",
    "nonce",
    "canonical",
    "signer",
    "entities",
    "query",
    "transport",
    "auth_center",
    "ledger",
    "asset_service",
    "config",
    "logging_config",
    "api",
]
