import struct
from typing import Dict, List, Optional

import pytest
from solders.account import Account
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from token_wrap.constants import TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID
from token_wrap.transaction import RecencyAnchor


def token_account_data(mint: Pubkey, owner: Pubkey, amount: int = 0, state: int = 1) -> bytes:
    # mint, owner, amount, delegate (COption), state, is_native (COption), delegated_amount, close_authority (COption)
    data = (
        bytes(mint)
        + bytes(owner)
        + struct.pack("<Q", amount)
        + struct.pack("<I", 0)
        + bytes(32)
        + bytes([state])
        + struct.pack("<I", 0)
        + struct.pack("<Q", 0)
        + struct.pack("<Q", 0)
        + struct.pack("<I", 0)
        + bytes(32)
    )
    assert len(data) == 165
    return data


def rent_for(size: int) -> int:
    return 890_880 + 6_960 * size


class FakeRpc:
    """In-memory stand-in for TokenWrapRpc."""

    def __init__(self):
        self.accounts: Dict[Pubkey, Account] = {}
        self.submitted: List = []
        self.anchor = RecencyAnchor(Hash.new_unique(), 1_000)
        self.lookups: List[Pubkey] = []

    def set_account(self, address: Pubkey, owner: Pubkey, data: bytes = b"", lamports: int = 1_000_000) -> None:
        self.accounts[address] = Account(lamports, data, owner)

    def set_token_account(
        self,
        address: Pubkey,
        mint: Pubkey,
        owner: Pubkey,
        amount: int = 0,
        token_program: Pubkey = TOKEN_PROGRAM_ID,
    ) -> None:
        data = token_account_data(mint, owner, amount)
        if token_program == TOKEN_2022_PROGRAM_ID:
            data += bytes([2])
        self.set_account(address, token_program, data, lamports=rent_for(len(data)))

    async def get_account_info(self, address: Pubkey) -> Optional[Account]:
        self.lookups.append(address)
        return self.accounts.get(address)

    async def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        return rent_for(size)

    async def get_latest_blockhash(self) -> RecencyAnchor:
        return self.anchor

    async def submit_and_confirm(self, tx, commitment=None):
        self.submitted.append((tx, commitment))
        return tx.signature


@pytest.fixture
def fake_rpc() -> FakeRpc:
    return FakeRpc()


@pytest.fixture
def anchor() -> RecencyAnchor:
    return RecencyAnchor(Hash.new_unique(), 123_456)


@pytest.fixture
def payer() -> Keypair:
    return Keypair()


@pytest.fixture
def signer_a() -> Keypair:
    return Keypair()


@pytest.fixture
def signer_b() -> Keypair:
    return Keypair()


@pytest.fixture
def signer_c() -> Keypair:
    return Keypair()
