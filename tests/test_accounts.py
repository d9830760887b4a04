import asyncio

import pytest
from solders.pubkey import Pubkey

from conftest import rent_for, token_account_data
from token_wrap.accounts import (
    decode_token_account,
    lamports_to_fund,
    resolve_mint_of_token_account,
    resolve_owning_program,
    resolve_unwrap_accounts,
    resolve_wrap_accounts,
)
from token_wrap.constants import MINT_SIZE, TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID
from token_wrap.errors import AccountNotFound, DecodeError
from token_wrap.pdas import associated_token_address, escrow_address, wrapped_mint_authority_pda, wrapped_mint_pda
from token_wrap.signers import Concrete, Placeholder


def test_decode_token_account():
    mint, owner = Pubkey.new_unique(), Pubkey.new_unique()
    state = decode_token_account(token_account_data(mint, owner, 42))
    assert (state.mint, state.owner, state.amount) == (mint, owner, 42)


def test_decode_token_2022_account_with_type_byte():
    mint, owner = Pubkey.new_unique(), Pubkey.new_unique()
    data = token_account_data(mint, owner, 7) + bytes([2]) + bytes(10)
    assert decode_token_account(data).mint == mint


def test_decode_rejects_mint_sized_data():
    with pytest.raises(DecodeError):
        decode_token_account(bytes(MINT_SIZE))


def test_decode_rejects_wrong_account_type():
    data = token_account_data(Pubkey.new_unique(), Pubkey.new_unique()) + bytes([1])
    with pytest.raises(DecodeError):
        decode_token_account(data)


def test_decode_rejects_uninitialized():
    with pytest.raises(DecodeError):
        decode_token_account(token_account_data(Pubkey.new_unique(), Pubkey.new_unique(), state=0))


def test_missing_account_raises(fake_rpc):
    address = Pubkey.new_unique()
    with pytest.raises(AccountNotFound) as excinfo:
        asyncio.run(resolve_owning_program(fake_rpc, address))
    assert excinfo.value.address == address


def test_resolve_mint_and_owner(fake_rpc):
    account, mint = Pubkey.new_unique(), Pubkey.new_unique()
    fake_rpc.set_token_account(account, mint, Pubkey.new_unique(), token_program=TOKEN_2022_PROGRAM_ID)
    assert asyncio.run(resolve_mint_of_token_account(fake_rpc, account)) == mint
    assert asyncio.run(resolve_owning_program(fake_rpc, account)) == TOKEN_2022_PROGRAM_ID


def test_lamports_to_fund(fake_rpc):
    missing = Pubkey.new_unique()
    assert asyncio.run(lamports_to_fund(fake_rpc, missing, MINT_SIZE)) == rent_for(MINT_SIZE)

    partial = Pubkey.new_unique()
    fake_rpc.set_account(partial, TOKEN_PROGRAM_ID, lamports=1_000)
    assert asyncio.run(lamports_to_fund(fake_rpc, partial, MINT_SIZE)) == rent_for(MINT_SIZE) - 1_000

    funded = Pubkey.new_unique()
    fake_rpc.set_account(funded, TOKEN_PROGRAM_ID, lamports=rent_for(MINT_SIZE) + 5)
    assert asyncio.run(lamports_to_fund(fake_rpc, funded, MINT_SIZE)) == 0


def test_resolve_wrap_accounts_defaults(fake_rpc, payer):
    source, mint = Pubkey.new_unique(), Pubkey.new_unique()
    fake_rpc.set_token_account(source, mint, payer.pubkey(), 500)

    accounts = asyncio.run(resolve_wrap_accounts(fake_rpc, payer, source, TOKEN_2022_PROGRAM_ID))

    wrapped_mint = wrapped_mint_pda(mint, TOKEN_2022_PROGRAM_ID)
    assert accounts.unwrapped_mint == mint
    assert accounts.unwrapped_token_program == TOKEN_PROGRAM_ID
    assert accounts.wrapped_mint == wrapped_mint
    assert accounts.wrapped_mint_authority == wrapped_mint_authority_pda(wrapped_mint)
    assert accounts.recipient_wrapped_token_account == associated_token_address(
        payer.pubkey(), wrapped_mint, TOKEN_2022_PROGRAM_ID
    )
    assert accounts.unwrapped_escrow == escrow_address(mint, TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID)
    assert isinstance(accounts.transfer_authority, Concrete)
    assert accounts.transfer_authority.address == payer.pubkey()


def test_resolve_wrap_accounts_skips_lookups_when_given(fake_rpc, payer):
    source, mint = Pubkey.new_unique(), Pubkey.new_unique()
    authority = Pubkey.new_unique()
    accounts = asyncio.run(
        resolve_wrap_accounts(
            fake_rpc,
            payer,
            source,
            TOKEN_2022_PROGRAM_ID,
            transfer_authority=authority,
            unwrapped_mint=mint,
            unwrapped_token_program=TOKEN_PROGRAM_ID,
        )
    )
    assert fake_rpc.lookups == []
    assert accounts.transfer_authority == Placeholder(authority)
    ix = accounts.instruction(10)
    assert ix.accounts[8].pubkey == authority


def test_resolve_unwrap_accounts(fake_rpc, payer):
    mint = Pubkey.new_unique()
    wrapped_mint = wrapped_mint_pda(mint, TOKEN_2022_PROGRAM_ID)
    authority = wrapped_mint_authority_pda(wrapped_mint)
    escrow = escrow_address(mint, TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID)
    wrapped_account = Pubkey.new_unique()
    recipient = Pubkey.new_unique()
    fake_rpc.set_token_account(escrow, mint, authority, 100, token_program=TOKEN_PROGRAM_ID)
    fake_rpc.set_token_account(wrapped_account, wrapped_mint, payer.pubkey(), 100, token_program=TOKEN_2022_PROGRAM_ID)

    accounts = asyncio.run(resolve_unwrap_accounts(fake_rpc, payer, wrapped_account, escrow, recipient))

    assert accounts.unwrapped_mint == mint
    assert accounts.wrapped_mint == wrapped_mint
    assert accounts.wrapped_mint_authority == authority
    assert accounts.wrapped_token_program == TOKEN_2022_PROGRAM_ID
    assert accounts.unwrapped_token_program == TOKEN_PROGRAM_ID
    ix = accounts.instruction(25)
    assert [m.pubkey for m in ix.accounts][:2] == [escrow, recipient]


def test_resolve_unwrap_multisig_signers(fake_rpc, payer, signer_a):
    escrow, wrapped_account = Pubkey.new_unique(), Pubkey.new_unique()
    multisig = Pubkey.new_unique()
    member_b = Pubkey.new_unique()
    accounts = asyncio.run(
        resolve_unwrap_accounts(
            fake_rpc,
            payer,
            wrapped_account,
            escrow,
            Pubkey.new_unique(),
            transfer_authority=multisig,
            unwrapped_mint=Pubkey.new_unique(),
            wrapped_token_program=TOKEN_2022_PROGRAM_ID,
            unwrapped_token_program=TOKEN_PROGRAM_ID,
            wrapped_mint=Pubkey.new_unique(),
            multi_signers=[signer_a, member_b],
        )
    )
    assert [s.address for s in accounts.signers] == [signer_a.pubkey(), member_b]
    ix = accounts.instruction(1)
    assert [m.pubkey for m in ix.accounts[9:]] == [signer_a.pubkey(), member_b]
    assert not ix.accounts[8].is_signer
