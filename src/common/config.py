from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .idl import Idl, load_idl
from .keys import Keypair, PublicKey, load_keypair


# Endpoint overrides; nothing else is read from the environment
ENV_CLUSTER_URL = "GIF_PORTAL_CLUSTER_URL"
ENV_COMMITMENT = "GIF_PORTAL_COMMITMENT"

DEFAULT_CLUSTER = "devnet"
DEFAULT_KEYPAIR_PATH = Path("keypair.json")

CLUSTER_URLS: Dict[str, str] = {
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
}


class Commitment(str, Enum):
    """How strongly a transaction must be acknowledged before it counts."""

    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"

    @property
    def rank(self) -> int:
        return _COMMITMENT_RANK[self]

    @classmethod
    def parse(cls, value: "str | Commitment") -> "Commitment":
        if isinstance(value, Commitment):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            known = ", ".join(c.value for c in cls)
            raise ValueError(f"Unknown commitment {value!r}; expected one of: {known}") from None


_COMMITMENT_RANK = {
    Commitment.PROCESSED: 0,
    Commitment.CONFIRMED: 1,
    Commitment.FINALIZED: 2,
}


def cluster_api_url(cluster: str) -> str:
    """Resolve a cluster name to its public RPC URL; URLs pass through."""
    if cluster.startswith(("http://", "https://")):
        return cluster
    try:
        return CLUSTER_URLS[cluster]
    except KeyError:
        known = ", ".join(CLUSTER_URLS)
        raise ValueError(f"Unknown cluster {cluster!r}; expected a URL or one of: {known}") from None


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


class PortalConfig(BaseModel):
    """
    Deployment configuration, built once at startup.

    Holds the network endpoint, the confirmation level, the program IDL and
    the base account key pair. It is passed by reference into `ChainClient`;
    nothing in the core reads these values from module globals.

    Notes
    - `commitment` defaults to "processed": fastest acknowledgment, weakest
      guarantee. A re-fetch right after an append may still see the old list.
    - The base account key pair is a deployment artifact; users never enter it.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    cluster_url: str = Field(default=CLUSTER_URLS[DEFAULT_CLUSTER])
    commitment: Commitment = Commitment.PROCESSED
    idl: Idl
    base_account: Keypair
    http_timeout: float = 30.0
    confirm_timeout: float = 30.0
    confirm_poll_interval: float = 0.5
    max_requests_per_window: int = 40
    rate_window_seconds: float = 10.0

    @property
    def program_id(self) -> PublicKey:
        return self.idl.program_id

    @property
    def base_account_id(self) -> PublicKey:
        return self.base_account.public_key

    # -------- Construction helpers --------
    @classmethod
    def load(
        cls,
        *,
        cluster: str = DEFAULT_CLUSTER,
        commitment: "str | Commitment" = Commitment.PROCESSED,
        keypair_path: "os.PathLike[str] | str" = DEFAULT_KEYPAIR_PATH,
        idl_path: Optional[str] = None,
        **overrides,
    ) -> "PortalConfig":
        return cls(
            cluster_url=cluster_api_url(cluster),
            commitment=Commitment.parse(commitment),
            idl=load_idl(idl_path),
            base_account=load_keypair(keypair_path),
            **overrides,
        )

    @classmethod
    def from_env(
        cls,
        *,
        keypair_path: "os.PathLike[str] | str" = DEFAULT_KEYPAIR_PATH,
        idl_path: Optional[str] = None,
    ) -> "PortalConfig":
        cluster = _getenv(ENV_CLUSTER_URL, DEFAULT_CLUSTER)
        commitment = _getenv(ENV_COMMITMENT, Commitment.PROCESSED.value)
        return cls.load(
            cluster=cluster,  # type: ignore[arg-type]
            commitment=commitment,  # type: ignore[arg-type]
            keypair_path=keypair_path,
            idl_path=idl_path,
        )


__all__ = [
    "Commitment",
    "PortalConfig",
    "cluster_api_url",
    "CLUSTER_URLS",
    "ENV_CLUSTER_URL",
    "ENV_COMMITMENT",
]
