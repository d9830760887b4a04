import asyncio
from types import SimpleNamespace

import pytest
from solana.rpc.core import RPCException
from solders.hash import Hash
from solders.pubkey import Pubkey

from token_wrap.errors import SubmissionError, TokenWrapProgramError, program_error_from_text
from token_wrap.rpc import TokenWrapRpc
from token_wrap.transaction import RecencyAnchor, assert_fully_signed, build_transaction
from token_wrap.tx_builder import build_system_transfer_ix


class StubClient:
    def __init__(self, send_error=None, status_err=None):
        self.send_error = send_error
        self.status_err = status_err
        self.sent = []
        self.confirm_calls = []
        self.closed = False

    async def send_raw_transaction(self, raw, opts=None):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((raw, opts))
        return SimpleNamespace(value=self.signature)

    async def confirm_transaction(self, signature, commitment=None, **kwargs):
        self.confirm_calls.append((signature, commitment, kwargs))
        return SimpleNamespace(value=[SimpleNamespace(err=self.status_err)])

    async def get_latest_blockhash(self, commitment=None):
        return SimpleNamespace(value=SimpleNamespace(blockhash=Hash.default(), last_valid_block_height=77))

    async def close(self):
        self.closed = True


def signed_tx(payer, anchor):
    ix = build_system_transfer_ix(payer.pubkey(), Pubkey.new_unique(), 5)
    return assert_fully_signed(build_transaction(payer, anchor, [ix]), anchor)


def test_submit_and_confirm(payer, anchor):
    fst = signed_tx(payer, anchor)
    client = StubClient()
    client.signature = fst.signature
    rpc = TokenWrapRpc(client, commitment="confirmed")

    sig = asyncio.run(rpc.submit_and_confirm(fst))

    assert sig == fst.signature
    raw, opts = client.sent[0]
    assert raw == fst.to_bytes()
    assert opts.skip_preflight is False
    assert client.confirm_calls[0][2] == {"last_valid_block_height": anchor.last_valid_block_height}


def test_send_failure_decodes_program_error(payer, anchor):
    fst = signed_tx(payer, anchor)
    rpc = TokenWrapRpc(StubClient(send_error=RPCException("Transaction simulation failed: custom program error: 0x2")))
    with pytest.raises(SubmissionError) as excinfo:
        asyncio.run(rpc.submit_and_confirm(fst))
    assert excinfo.value.program_error is TokenWrapProgramError.ZeroWrapAmount


def test_on_chain_failure_raises(payer, anchor):
    fst = signed_tx(payer, anchor)
    client = StubClient(status_err="InstructionError((0, Custom(8)))")
    client.signature = fst.signature
    with pytest.raises(SubmissionError) as excinfo:
        asyncio.run(TokenWrapRpc(client).submit_and_confirm(fst))
    assert excinfo.value.program_error is TokenWrapProgramError.EscrowInGoodState


def test_latest_blockhash_and_close():
    client = StubClient()

    async def run():
        async with TokenWrapRpc(client) as rpc:
            return await rpc.get_latest_blockhash()

    anchor = asyncio.run(run())
    assert anchor == RecencyAnchor(Hash.default(), 77)
    assert client.closed


@pytest.mark.parametrize(
    "text,expected",
    [
        ("custom program error: 0x0", TokenWrapProgramError.WrappedMintMismatch),
        ("custom program error: 0xf", TokenWrapProgramError.NoSyncingToToken2022),
        ("Custom(3)", TokenWrapProgramError.MintAuthorityMismatch),
        ("custom program error: 0x63", None),
        ("blockhash not found", None),
    ],
)
def test_program_error_from_text(text, expected):
    assert program_error_from_text(text) is expected
