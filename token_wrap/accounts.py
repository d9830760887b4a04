import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence, Tuple, TypeVar

from solders.account import Account
from solders.instruction import Instruction
from solders.pubkey import Pubkey
from spl.token._layouts import ACCOUNT_LAYOUT

from .constants import TOKEN_ACCOUNT_SIZE, TOKEN_WRAP_PROGRAM_ID
from .errors import AccountNotFound, DecodeError
from .pdas import associated_token_address, wrapped_mint_authority_pda, wrapped_mint_pda
from .signers import Signer, SignerLike, as_signer
from .tx_builder import build_unwrap_ix, build_wrap_ix

logger = logging.getLogger("token_wrap.accounts")

T = TypeVar("T")

# Token-2022 writes an account-type byte right after the base layout.
ACCOUNT_TYPE_ACCOUNT = 2
ACCOUNT_STATE_UNINITIALIZED = 0


@dataclass(frozen=True)
class TokenAccountState:
    mint: Pubkey
    owner: Pubkey
    amount: int


def decode_token_account(data: bytes, address: Optional[Pubkey] = None) -> TokenAccountState:
    data = bytes(data)
    if len(data) < TOKEN_ACCOUNT_SIZE:
        raise DecodeError(address, f"{len(data)} bytes is shorter than the {TOKEN_ACCOUNT_SIZE}-byte token account layout")
    if len(data) > TOKEN_ACCOUNT_SIZE and data[TOKEN_ACCOUNT_SIZE] != ACCOUNT_TYPE_ACCOUNT:
        raise DecodeError(address, f"account type byte is {data[TOKEN_ACCOUNT_SIZE]}, not a token account")
    try:
        parsed = ACCOUNT_LAYOUT.parse(data[:TOKEN_ACCOUNT_SIZE])
    except Exception as exc:  # noqa: BLE001
        raise DecodeError(address, str(exc)) from exc
    if parsed.state == ACCOUNT_STATE_UNINITIALIZED:
        raise DecodeError(address, "account is not initialized")
    return TokenAccountState(
        mint=Pubkey.from_bytes(parsed.mint),
        owner=Pubkey.from_bytes(parsed.owner),
        amount=parsed.amount,
    )


async def fetch_account(rpc, address: Pubkey) -> Account:
    info = await rpc.get_account_info(address)
    if info is None:
        raise AccountNotFound(address)
    return info


async def resolve_owning_program(rpc, address: Pubkey) -> Pubkey:
    info = await fetch_account(rpc, address)
    logger.debug("resolved_owner address=%s owner=%s", address, info.owner)
    return info.owner


async def fetch_token_account(rpc, address: Pubkey) -> TokenAccountState:
    info = await fetch_account(rpc, address)
    return decode_token_account(info.data, address)


async def resolve_mint_of_token_account(rpc, address: Pubkey) -> Pubkey:
    state = await fetch_token_account(rpc, address)
    logger.debug("resolved_mint token_account=%s mint=%s", address, state.mint)
    return state.mint


async def resolve_wrapped_mint_from_token_account(rpc, address: Pubkey) -> Pubkey:
    # Wrapped token accounts share the base layout.
    return await resolve_mint_of_token_account(rpc, address)


async def lamports_to_fund(rpc, address: Pubkey, size: int) -> int:
    """Lamports still needed for `address` to hold `size` bytes rent-free."""
    info, rent = await asyncio.gather(
        rpc.get_account_info(address),
        rpc.get_minimum_balance_for_rent_exemption(size),
    )
    current = info.lamports if info is not None else 0
    return max(0, rent - current)


async def _given_or(value: Optional[T], lookup: Callable[..., Awaitable[T]], *args) -> T:
    if value is not None:
        return value
    return await lookup(*args)


@dataclass(frozen=True)
class WrapAccounts:
    recipient_wrapped_token_account: Pubkey
    wrapped_mint: Pubkey
    wrapped_mint_authority: Pubkey
    unwrapped_token_program: Pubkey
    wrapped_token_program: Pubkey
    unwrapped_token_account: Pubkey
    unwrapped_mint: Pubkey
    unwrapped_escrow: Pubkey
    transfer_authority: Signer
    multi_signers: Tuple[Signer, ...] = ()
    program_id: Pubkey = TOKEN_WRAP_PROGRAM_ID

    def instruction(self, amount: int) -> Instruction:
        return build_wrap_ix(
            recipient_wrapped_token_account=self.recipient_wrapped_token_account,
            wrapped_mint=self.wrapped_mint,
            wrapped_mint_authority=self.wrapped_mint_authority,
            unwrapped_token_program=self.unwrapped_token_program,
            wrapped_token_program=self.wrapped_token_program,
            unwrapped_token_account=self.unwrapped_token_account,
            unwrapped_mint=self.unwrapped_mint,
            unwrapped_escrow=self.unwrapped_escrow,
            transfer_authority=self.transfer_authority.address,
            amount=amount,
            multi_signers=[s.address for s in self.multi_signers],
            program_id=self.program_id,
        )

    @property
    def signers(self) -> Tuple[Signer, ...]:
        if self.multi_signers:
            return self.multi_signers
        return (self.transfer_authority,)


@dataclass(frozen=True)
class UnwrapAccounts:
    unwrapped_escrow: Pubkey
    recipient_unwrapped_token: Pubkey
    wrapped_mint_authority: Pubkey
    unwrapped_mint: Pubkey
    wrapped_token_program: Pubkey
    unwrapped_token_program: Pubkey
    wrapped_token_account: Pubkey
    wrapped_mint: Pubkey
    transfer_authority: Signer
    multi_signers: Tuple[Signer, ...] = ()
    program_id: Pubkey = TOKEN_WRAP_PROGRAM_ID

    def instruction(self, amount: int) -> Instruction:
        return build_unwrap_ix(
            unwrapped_escrow=self.unwrapped_escrow,
            recipient_unwrapped_token=self.recipient_unwrapped_token,
            wrapped_mint_authority=self.wrapped_mint_authority,
            unwrapped_mint=self.unwrapped_mint,
            wrapped_token_program=self.wrapped_token_program,
            unwrapped_token_program=self.unwrapped_token_program,
            wrapped_token_account=self.wrapped_token_account,
            wrapped_mint=self.wrapped_mint,
            transfer_authority=self.transfer_authority.address,
            amount=amount,
            multi_signers=[s.address for s in self.multi_signers],
            program_id=self.program_id,
        )

    @property
    def signers(self) -> Tuple[Signer, ...]:
        if self.multi_signers:
            return self.multi_signers
        return (self.transfer_authority,)


async def resolve_wrap_accounts(
    rpc,
    payer: SignerLike,
    unwrapped_token_account: Pubkey,
    wrapped_token_program: Pubkey,
    transfer_authority: Optional[SignerLike] = None,
    unwrapped_mint: Optional[Pubkey] = None,
    recipient_wrapped_token_account: Optional[Pubkey] = None,
    unwrapped_token_program: Optional[Pubkey] = None,
    multi_signers: Sequence[SignerLike] = (),
    program_id: Pubkey = TOKEN_WRAP_PROGRAM_ID,
) -> WrapAccounts:
    payer_signer = as_signer(payer)
    unwrapped_mint, unwrapped_token_program = await asyncio.gather(
        _given_or(unwrapped_mint, resolve_mint_of_token_account, rpc, unwrapped_token_account),
        _given_or(unwrapped_token_program, resolve_owning_program, rpc, unwrapped_token_account),
    )
    wrapped_mint = wrapped_mint_pda(unwrapped_mint, wrapped_token_program, program_id)
    authority = wrapped_mint_authority_pda(wrapped_mint, program_id)
    if recipient_wrapped_token_account is None:
        recipient_wrapped_token_account = associated_token_address(
            payer_signer.address, wrapped_mint, wrapped_token_program
        )
    accounts = WrapAccounts(
        recipient_wrapped_token_account=recipient_wrapped_token_account,
        wrapped_mint=wrapped_mint,
        wrapped_mint_authority=authority,
        unwrapped_token_program=unwrapped_token_program,
        wrapped_token_program=wrapped_token_program,
        unwrapped_token_account=unwrapped_token_account,
        unwrapped_mint=unwrapped_mint,
        unwrapped_escrow=associated_token_address(authority, unwrapped_mint, unwrapped_token_program),
        transfer_authority=as_signer(transfer_authority) if transfer_authority is not None else payer_signer,
        multi_signers=tuple(as_signer(s) for s in multi_signers),
        program_id=program_id,
    )
    logger.debug(
        "wrap_accounts_resolved unwrapped_mint=%s wrapped_mint=%s escrow=%s",
        accounts.unwrapped_mint,
        accounts.wrapped_mint,
        accounts.unwrapped_escrow,
    )
    return accounts


async def resolve_unwrap_accounts(
    rpc,
    payer: SignerLike,
    wrapped_token_account: Pubkey,
    unwrapped_escrow: Pubkey,
    recipient_unwrapped_token: Pubkey,
    transfer_authority: Optional[SignerLike] = None,
    unwrapped_mint: Optional[Pubkey] = None,
    wrapped_token_program: Optional[Pubkey] = None,
    unwrapped_token_program: Optional[Pubkey] = None,
    wrapped_mint: Optional[Pubkey] = None,
    multi_signers: Sequence[SignerLike] = (),
    program_id: Pubkey = TOKEN_WRAP_PROGRAM_ID,
) -> UnwrapAccounts:
    wrapped_token_program, unwrapped_token_program, unwrapped_mint, wrapped_mint = await asyncio.gather(
        _given_or(wrapped_token_program, resolve_owning_program, rpc, wrapped_token_account),
        _given_or(unwrapped_token_program, resolve_owning_program, rpc, unwrapped_escrow),
        _given_or(unwrapped_mint, resolve_mint_of_token_account, rpc, unwrapped_escrow),
        _given_or(wrapped_mint, resolve_wrapped_mint_from_token_account, rpc, wrapped_token_account),
    )
    accounts = UnwrapAccounts(
        unwrapped_escrow=unwrapped_escrow,
        recipient_unwrapped_token=recipient_unwrapped_token,
        wrapped_mint_authority=wrapped_mint_authority_pda(wrapped_mint, program_id),
        unwrapped_mint=unwrapped_mint,
        wrapped_token_program=wrapped_token_program,
        unwrapped_token_program=unwrapped_token_program,
        wrapped_token_account=wrapped_token_account,
        wrapped_mint=wrapped_mint,
        transfer_authority=as_signer(transfer_authority if transfer_authority is not None else payer),
        multi_signers=tuple(as_signer(s) for s in multi_signers),
        program_id=program_id,
    )
    logger.debug(
        "unwrap_accounts_resolved wrapped_mint=%s escrow=%s",
        accounts.wrapped_mint,
        accounts.unwrapped_escrow,
    )
    return accounts
