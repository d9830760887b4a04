import logging
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from .constants import (
    BACKPOINTER_SEED,
    MAX_SEED_LEN,
    MAX_SEEDS,
    TOKEN_WRAP_PROGRAM_ID,
    WRAPPED_MINT_AUTHORITY_SEED,
    WRAPPED_MINT_SEED,
)
from .errors import InvalidInstructionArgs, SeedTooLong

logger = logging.getLogger("token_wrap.pdas")


def check_seeds(seeds: Sequence[bytes]) -> None:
    # One slot is reserved for the bump.
    if len(seeds) > MAX_SEEDS - 1:
        raise SeedTooLong(f"{len(seeds)} seeds given; at most {MAX_SEEDS - 1} allowed")
    for idx, seed in enumerate(seeds):
        if len(seed) > MAX_SEED_LEN:
            raise SeedTooLong(f"Seed {idx} is {len(seed)} bytes; limit is {MAX_SEED_LEN}", index=idx)


def find_pda(program_id: Pubkey, seeds: Sequence[bytes]) -> Tuple[Pubkey, int]:
    check_seeds(seeds)
    return Pubkey.find_program_address(list(seeds), program_id)


def wrapped_mint_pda(
    unwrapped_mint: Pubkey,
    wrapped_token_program: Pubkey,
    program_id: Pubkey = TOKEN_WRAP_PROGRAM_ID,
) -> Pubkey:
    return find_pda(program_id, [WRAPPED_MINT_SEED, bytes(unwrapped_mint), bytes(wrapped_token_program)])[0]


def backpointer_pda(wrapped_mint: Pubkey, program_id: Pubkey = TOKEN_WRAP_PROGRAM_ID) -> Pubkey:
    return find_pda(program_id, [BACKPOINTER_SEED, bytes(wrapped_mint)])[0]


def wrapped_mint_authority_pda(wrapped_mint: Pubkey, program_id: Pubkey = TOKEN_WRAP_PROGRAM_ID) -> Pubkey:
    return find_pda(program_id, [WRAPPED_MINT_AUTHORITY_SEED, bytes(wrapped_mint)])[0]


def associated_token_address(owner: Pubkey, mint: Pubkey, token_program: Pubkey) -> Pubkey:
    try:
        return get_associated_token_address(owner, mint, token_program)
    except ValueError as exc:
        raise InvalidInstructionArgs(str(exc)) from exc


def escrow_address(
    unwrapped_mint: Pubkey,
    wrapped_token_program: Pubkey,
    unwrapped_token_program: Pubkey,
    program_id: Pubkey = TOKEN_WRAP_PROGRAM_ID,
) -> Pubkey:
    wrapped_mint = wrapped_mint_pda(unwrapped_mint, wrapped_token_program, program_id)
    authority = wrapped_mint_authority_pda(wrapped_mint, program_id)
    return associated_token_address(authority, unwrapped_mint, unwrapped_token_program)


@dataclass(frozen=True)
class WrapPdas:
    wrapped_mint: Pubkey
    wrapped_mint_authority: Pubkey
    backpointer: Pubkey
    unwrapped_escrow: Pubkey

    def to_dict(self) -> Dict[str, str]:
        return {
            "wrappedMintAddress": str(self.wrapped_mint),
            "wrappedMintAuthority": str(self.wrapped_mint_authority),
            "wrappedBackpointerAddress": str(self.backpointer),
            "unwrappedEscrow": str(self.unwrapped_escrow),
        }


def find_pdas(
    unwrapped_mint: Pubkey,
    wrapped_token_program: Pubkey,
    unwrapped_token_program: Pubkey,
    program_id: Pubkey = TOKEN_WRAP_PROGRAM_ID,
) -> WrapPdas:
    wrapped_mint = wrapped_mint_pda(unwrapped_mint, wrapped_token_program, program_id)
    authority = wrapped_mint_authority_pda(wrapped_mint, program_id)
    pdas = WrapPdas(
        wrapped_mint=wrapped_mint,
        wrapped_mint_authority=authority,
        backpointer=backpointer_pda(wrapped_mint, program_id),
        unwrapped_escrow=associated_token_address(authority, unwrapped_mint, unwrapped_token_program),
    )
    logger.debug("pdas_derived unwrapped_mint=%s wrapped_mint=%s", unwrapped_mint, wrapped_mint)
    return pdas
