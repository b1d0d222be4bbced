"""
Common building blocks for the GIF portal.

Modules:
- errors: portal error taxonomy and the Outcome report
- keys: base58 public keys and Ed25519 key pairs
- config: PortalConfig, commitment levels, cluster endpoints
- idl: Anchor interface definition, discriminators, Borsh encode/decode
- transaction: legacy Solana message compile and wire format
- rate_limiter: non-blocking sliding-window throttle
- chain_client: JSON-RPC client for the GIF program
"""

__all__ = [
    "errors",
    "keys",
    "config",
    "idl",
    "transaction",
    "rate_limiter",
    "chain_client",
]
