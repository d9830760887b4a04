from types import MappingProxyType

from solders.pubkey import Pubkey

TOKEN_WRAP_PROGRAM_ID = Pubkey.from_string("TwRapQCDhWkZRrDaHfZGuHxkZ91gHDRkyuzNqeU5MgR")
SYS_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
TOKEN_2022_PROGRAM_ID = Pubkey.from_string("TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")

WRAPPED_MINT_SEED = b"mint"
BACKPOINTER_SEED = b"backpointer"
WRAPPED_MINT_AUTHORITY_SEED = b"authority"

MAX_SEED_LEN = 32
# Includes the bump seed appended during derivation.
MAX_SEEDS = 16

MINT_SIZE = 82
BACKPOINTER_SIZE = 32
TOKEN_ACCOUNT_SIZE = 165
U64_MAX = (1 << 64) - 1

WELL_KNOWN_ACCOUNTS = MappingProxyType(
    {
        "system": SYS_PROGRAM_ID,
        "token": TOKEN_PROGRAM_ID,
        "token-2022": TOKEN_2022_PROGRAM_ID,
        "associated-token": ASSOCIATED_TOKEN_PROGRAM_ID,
        "token-wrap": TOKEN_WRAP_PROGRAM_ID,
    }
)

TOKEN_PROGRAMS = frozenset({TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID})


def is_token_program(program_id: Pubkey) -> bool:
    return program_id in TOKEN_PROGRAMS
