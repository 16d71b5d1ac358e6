"""
Client configuration.

One immutable ``VaultConfig`` is built at startup (usually from the
environment) and handed to every component that needs a program id, an
endpoint or a wire revision.

Usage:
    from diamond_hands.config import VaultConfig
    cfg = VaultConfig.from_env()
    cfg.program_id        # Pubkey of the vault program
    cfg.revision          # SchemaRevision.V1 unless SCHEMA_REVISION is set
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from solders.pubkey import Pubkey

from diamond_hands import program_ids as pids
from diamond_hands.vault.state.common import SchemaRevision

DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"


@dataclass(frozen=True)
class VaultConfig:
    program_id: Pubkey = pids.VAULT_PROGRAM_ID
    token_program_id: Pubkey = pids.SPL_TOKEN_PROGRAM_ID
    system_program_id: Pubkey = pids.SYSTEM_PROGRAM_ID
    rpc_url: str = DEFAULT_RPC_URL
    # private endpoint used for submission only; never logged
    submit_rpc_url: Optional[str] = field(default=None, repr=False)
    default_mint: Optional[Pubkey] = None
    revision: SchemaRevision = SchemaRevision.V1
    confirm_timeout: float = 60.0
    poll_interval: float = 0.5
    max_retries: int = 3
    retry_backoff: float = 0.5
    max_blockhash_retries: int = 2
    skip_preflight: bool = True

    @property
    def submit_url(self) -> str:
        return self.submit_rpc_url or self.rpc_url

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "VaultConfig":
        env = os.environ if environ is None else environ

        kwargs = {
            "program_id": Pubkey.from_string(
                env.get("DIAMOND_HANDS_PROGRAM_ID", pids.DEFAULT_VAULT_PROGRAM_ID)
            ),
            "rpc_url": env.get("RPC", DEFAULT_RPC_URL),
            "submit_rpc_url": env.get("SUBMIT_RPC") or None,
            "revision": SchemaRevision(int(env.get("SCHEMA_REVISION", SchemaRevision.V1))),
            "confirm_timeout": float(env.get("CONFIRM_TIMEOUT", 60.0)),
            "max_retries": int(env.get("MAX_RETRIES", 3)),
            "retry_backoff": float(env.get("RETRY_BACKOFF", 0.5)),
        }
        mint = env.get("MINT")
        if mint:
            kwargs["default_mint"] = Pubkey.from_string(mint)

        kwargs.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**kwargs)
