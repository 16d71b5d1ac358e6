from .common import (
    SLOTS_PER_EPOCH,
    VAULT_DISCRIMINATOR,
    VAULT_SEED,
    SchemaRevision,
)
from .token import (
    MINT_LEN,
    TOKEN_ACCOUNT_LEN,
    MintLayout,
    TokenAccountLayout,
    parse_mint_decimals,
    parse_token_amount,
)
from .vault import (
    ADMIN_OFFSET,
    Vault,
    VaultLayoutV1,
    VaultLayoutV2,
    vault_size,
)


def account_parser(data, revision=SchemaRevision.V1):
    if not data or not any(data):
        return None
    return Vault.from_bytes(data, revision)


__all__ = [
    "ADMIN_OFFSET",
    "MINT_LEN",
    "SLOTS_PER_EPOCH",
    "TOKEN_ACCOUNT_LEN",
    "VAULT_DISCRIMINATOR",
    "VAULT_SEED",
    "MintLayout",
    "SchemaRevision",
    "TokenAccountLayout",
    "Vault",
    "VaultLayoutV1",
    "VaultLayoutV2",
    "account_parser",
    "parse_mint_decimals",
    "parse_token_amount",
    "vault_size",
]
