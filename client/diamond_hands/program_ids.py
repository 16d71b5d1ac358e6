from solders.pubkey import Pubkey
from solders.system_program import ID as SYS_PROGRAM_ID
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID

DEFAULT_VAULT_PROGRAM_ID = "CATvuZTNuyeBkoo5Tpeqtxcn51NDLNMExWPZ5vzQxkEg"
DEFAULT_MINT = "84Y6h6XoaLAD1zxoQ2CDhcZYRpNsSBKsXULCnpjXpump"

SYSTEM_PROGRAM_ID: Pubkey = SYS_PROGRAM_ID
SPL_TOKEN_PROGRAM_ID: Pubkey = TOKEN_PROGRAM_ID
SPL_ASSOCIATED_TOKEN_PROGRAM_ID: Pubkey = ASSOCIATED_TOKEN_PROGRAM_ID

VAULT_PROGRAM_ID = Pubkey.from_string(DEFAULT_VAULT_PROGRAM_ID)
