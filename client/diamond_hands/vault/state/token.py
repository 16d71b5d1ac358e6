from podite import FixedLenArray, U32, U64, U8, pod

# Leading fields of the SPL token program accounts. Only the prefix needed to
# read balances and decimals is described; the rest of the account is ignored.

TOKEN_ACCOUNT_LEN = 165
MINT_LEN = 82


@pod
class TokenAccountLayout:
    mint: FixedLenArray[U8, 32]
    owner: FixedLenArray[U8, 32]
    amount: U64


@pod
class MintLayout:
    mint_authority_option: U32
    mint_authority: FixedLenArray[U8, 32]
    supply: U64
    decimals: U8
    is_initialized: U8


def parse_token_amount(data: bytes) -> int:
    size = TokenAccountLayout.calc_size()
    if len(data) < size:
        raise ValueError(f"Token account data too short: {len(data)} < {size}")
    return TokenAccountLayout.from_bytes(bytes(data[:size])).amount


def parse_mint_decimals(data: bytes) -> int:
    size = MintLayout.calc_size()
    if len(data) < size:
        raise ValueError(f"Mint account data too short: {len(data)} < {size}")
    return MintLayout.from_bytes(bytes(data[:size])).decimals
