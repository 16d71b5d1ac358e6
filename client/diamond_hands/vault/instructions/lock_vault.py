from dataclasses import dataclass
from typing import Dict, Optional, Type

from podite import FixedLenArray, U8, U64, pod
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from diamond_hands import program_ids as pids
from diamond_hands.vault.state.common import SchemaRevision
from .common import InstructionCode, decode_instruction_code

U64_MAX = (1 << 64) - 1


@pod
class Params:
    """Packed layout read by the deployed program (19 bytes)."""

    instr: InstructionCode
    vault_bump: U8
    slots_to_lock: U64
    has_tokens_to_lock: U8
    tokens_to_lock: U64


@pod
class AlignedParams:
    """Both u64 operands on 8-byte boundaries (32 bytes)."""

    instr: InstructionCode
    vault_bump: U8
    padding0: FixedLenArray[U8, 6]
    slots_to_lock: U64
    has_tokens_to_lock: U8
    padding1: FixedLenArray[U8, 7]
    tokens_to_lock: U64


PARAMS: Dict[SchemaRevision, Type] = {
    SchemaRevision.V1: Params,
    SchemaRevision.V2: AlignedParams,
}


@dataclass
class LockVaultArgs:
    vault_bump: int
    slots_to_lock: int
    tokens_to_lock: Optional[int] = None


def lock_vault_data_len(revision: SchemaRevision = SchemaRevision.V1) -> int:
    return PARAMS[SchemaRevision(revision)].calc_size()


def encode_lock_vault_data(
    vault_bump: int,
    slots_to_lock: int,
    tokens_to_lock: Optional[int] = None,
    revision: SchemaRevision = SchemaRevision.V1,
) -> bytes:
    if not 0 <= vault_bump <= 255:
        raise ValueError(f"vault_bump does not fit in a u8: {vault_bump}")
    if not 0 <= slots_to_lock <= U64_MAX:
        raise ValueError(f"slots_to_lock does not fit in a u64: {slots_to_lock}")
    if tokens_to_lock is not None and not 0 <= tokens_to_lock <= U64_MAX:
        raise ValueError(f"tokens_to_lock does not fit in a u64: {tokens_to_lock}")

    revision = SchemaRevision(revision)
    # an absent amount is a zero tag followed by zero bytes, never leftovers
    fields = dict(
        instr=InstructionCode.LOCK_VAULT,
        vault_bump=vault_bump,
        slots_to_lock=slots_to_lock,
        has_tokens_to_lock=0 if tokens_to_lock is None else 1,
        tokens_to_lock=0 if tokens_to_lock is None else tokens_to_lock,
    )
    if revision == SchemaRevision.V2:
        fields.update(padding0=bytes(6), padding1=bytes(7))

    params_cls = PARAMS[revision]
    return params_cls.to_bytes(params_cls(**fields))


def decode_lock_vault_data(
    data: bytes,
    revision: SchemaRevision = SchemaRevision.V1,
) -> LockVaultArgs:
    params_cls = PARAMS[SchemaRevision(revision)]
    size = params_cls.calc_size()
    if len(data) != size:
        raise ValueError(f"Lock instruction data must be {size} bytes, got {len(data)}")
    if decode_instruction_code(data) != InstructionCode.LOCK_VAULT:
        raise ValueError(f"Not a lock instruction: code {data[0]}")

    params = params_cls.from_bytes(bytes(data))
    if params.has_tokens_to_lock not in (0, 1):
        raise ValueError(f"Invalid option tag for tokens_to_lock: {params.has_tokens_to_lock}")

    return LockVaultArgs(
        vault_bump=params.vault_bump,
        slots_to_lock=params.slots_to_lock,
        tokens_to_lock=params.tokens_to_lock if params.has_tokens_to_lock else None,
    )


def lock_vault_ix(
    vault: Pubkey,
    admin: Pubkey,
    mint: Pubkey,
    admin_token: Pubkey,
    vault_token: Pubkey,
    vault_bump: int,
    slots_to_lock: int,
    tokens_to_lock: Optional[int] = None,
    revision: SchemaRevision = SchemaRevision.V1,
    program_id: Pubkey = pids.VAULT_PROGRAM_ID,
    token_program: Pubkey = pids.SPL_TOKEN_PROGRAM_ID,
    system_program: Pubkey = pids.SYSTEM_PROGRAM_ID,
) -> Instruction:
    # the program indexes accounts by position
    keys = [
        AccountMeta(pubkey=vault, is_signer=False, is_writable=True),
        AccountMeta(pubkey=admin, is_signer=True, is_writable=True),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=admin_token, is_signer=False, is_writable=True),
        AccountMeta(pubkey=vault_token, is_signer=False, is_writable=True),
        AccountMeta(pubkey=token_program, is_signer=False, is_writable=False),
        AccountMeta(pubkey=system_program, is_signer=False, is_writable=False),
    ]
    data = encode_lock_vault_data(vault_bump, slots_to_lock, tokens_to_lock, revision)
    return Instruction(program_id=program_id, data=data, accounts=keys)
