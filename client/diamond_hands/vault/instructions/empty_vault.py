from podite import pod
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from diamond_hands import program_ids as pids
from .common import InstructionCode, decode_instruction_code


@pod
class Params:
    instr: InstructionCode


def encode_empty_vault_data() -> bytes:
    return Params.to_bytes(Params(instr=InstructionCode.EMPTY_VAULT))


def decode_empty_vault_data(data: bytes) -> None:
    if len(data) != Params.calc_size():
        raise ValueError(f"Empty instruction data must be {Params.calc_size()} byte, got {len(data)}")
    if decode_instruction_code(data) != InstructionCode.EMPTY_VAULT:
        raise ValueError(f"Not an empty instruction: code {data[0]}")


def empty_vault_ix(
    vault: Pubkey,
    admin: Pubkey,
    mint: Pubkey,
    admin_token: Pubkey,
    vault_token: Pubkey,
    program_id: Pubkey = pids.VAULT_PROGRAM_ID,
    token_program: Pubkey = pids.SPL_TOKEN_PROGRAM_ID,
    system_program: Pubkey = pids.SYSTEM_PROGRAM_ID,
) -> Instruction:
    keys = [
        AccountMeta(pubkey=vault, is_signer=False, is_writable=True),
        AccountMeta(pubkey=admin, is_signer=True, is_writable=True),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=admin_token, is_signer=False, is_writable=True),
        AccountMeta(pubkey=vault_token, is_signer=False, is_writable=True),
        AccountMeta(pubkey=token_program, is_signer=False, is_writable=False),
        AccountMeta(pubkey=system_program, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id=program_id, data=encode_empty_vault_data(), accounts=keys)
