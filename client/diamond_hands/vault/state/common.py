from enum import IntEnum

VAULT_SEED = b"VAULT"
VAULT_DISCRIMINATOR = 1
SLOTS_PER_EPOCH = 432_000
PUBKEY_LEN = 32
RESERVED_LEN = 32


class SchemaRevision(IntEnum):
    """
    Wire format revisions of the vault account and the lock instruction.

    V1 is what the deployed program reads and writes: a packed 148 byte
    account without ``tokens_locked`` and a packed 19 byte lock payload.
    V2 adds ``tokens_locked`` to the account (156 bytes) and pads the lock
    payload so both u64 operands are 8-byte aligned (32 bytes).
    """

    V1 = 1
    V2 = 2
