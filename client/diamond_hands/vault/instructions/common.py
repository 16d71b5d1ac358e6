from podite import U8, Enum, pod


@pod
class InstructionCode(Enum[U8]):
    LOCK_VAULT = 1
    EMPTY_VAULT = 2


OPCODES = {
    1: InstructionCode.LOCK_VAULT,
    2: InstructionCode.EMPTY_VAULT,
}


def decode_instruction_code(data: bytes) -> InstructionCode:
    if not data:
        raise ValueError("Instruction data is empty")
    try:
        return OPCODES[data[0]]
    except KeyError:
        raise ValueError(f"Unknown instruction code: {data[0]}") from None
