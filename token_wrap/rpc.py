import logging
from typing import Optional

from solana.rpc.async_api import AsyncClient
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.account import Account
from solders.pubkey import Pubkey
from solders.signature import Signature

from .errors import SubmissionError, program_error_from_text
from .settings import Settings, get_settings
from .transaction import FullySignedTransaction, RecencyAnchor

logger = logging.getLogger("token_wrap.rpc")


class TokenWrapRpc:
    """Thin adapter over `AsyncClient` exposing just what the wrap flows need."""

    def __init__(self, client: AsyncClient, commitment: str = "confirmed", skip_preflight: bool = False):
        self.client = client
        self.commitment = commitment
        self.skip_preflight = skip_preflight

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "TokenWrapRpc":
        settings = settings or get_settings()
        return cls(
            AsyncClient(settings.rpc_url, commitment=settings.commitment),
            commitment=settings.commitment,
            skip_preflight=settings.skip_preflight,
        )

    async def __aenter__(self) -> "TokenWrapRpc":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self.client.close()

    async def get_account_info(self, address: Pubkey) -> Optional[Account]:
        resp = await self.client.get_account_info(address, commitment=self.commitment)
        return resp.value

    async def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        resp = await self.client.get_minimum_balance_for_rent_exemption(size, commitment=self.commitment)
        return resp.value

    async def get_latest_blockhash(self) -> RecencyAnchor:
        resp = await self.client.get_latest_blockhash(commitment=self.commitment)
        return RecencyAnchor(resp.value.blockhash, resp.value.last_valid_block_height)

    async def submit_and_confirm(
        self, tx: FullySignedTransaction, commitment: Optional[str] = None
    ) -> Signature:
        commitment = commitment or self.commitment
        opts = TxOpts(skip_preflight=self.skip_preflight, preflight_commitment=commitment)
        try:
            resp = await self.client.send_raw_transaction(tx.to_bytes(), opts=opts)
        except RPCException as exc:
            raise SubmissionError(f"Transaction rejected: {exc}", program_error_from_text(str(exc))) from exc
        except Exception as exc:  # noqa: BLE001
            raise SubmissionError(f"Failed to send transaction: {exc}") from exc
        signature = resp.value
        logger.info("transaction_sent sig=%s", signature)

        last_valid = tx.lifetime.last_valid_block_height if tx.lifetime is not None else None
        try:
            confirm = await self.client.confirm_transaction(
                signature, commitment, last_valid_block_height=last_valid
            )
        except Exception as exc:  # noqa: BLE001
            raise SubmissionError(f"Failed to confirm transaction {signature}: {exc}") from exc
        status = confirm.value[0] if confirm.value else None
        if status is not None and status.err is not None:
            detail = str(status.err)
            raise SubmissionError(
                f"Transaction {signature} failed on-chain: {detail}", program_error_from_text(detail)
            )
        logger.info("transaction_confirmed sig=%s commitment=%s", signature, commitment)
        return signature
