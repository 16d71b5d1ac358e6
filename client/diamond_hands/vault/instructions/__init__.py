from .common import (
    InstructionCode,
    decode_instruction_code,
)

from .empty_vault import (
    decode_empty_vault_data,
    empty_vault_ix,
    encode_empty_vault_data,
)

from .lock_vault import (
    LockVaultArgs,
    decode_lock_vault_data,
    encode_lock_vault_data,
    lock_vault_data_len,
    lock_vault_ix,
)

__all__ = [
    "InstructionCode",
    "LockVaultArgs",
    "decode_empty_vault_data",
    "decode_instruction_code",
    "decode_lock_vault_data",
    "empty_vault_ix",
    "encode_empty_vault_data",
    "encode_lock_vault_data",
    "lock_vault_data_len",
    "lock_vault_ix",
]
