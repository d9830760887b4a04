"""
Combine independently signed copies of one transaction.

Each signer builds the same template on their own machine, signs what they
can, and hands back a `PartiallySignedTransaction`. The coordinator checks that
every copy carries byte-identical message bytes, merges the signature maps in
the first copy's signer order, and refuses to hand out anything that is not
fully signed.

    COLLECTING -> VALIDATED -> MERGED -> COMPLETE -> SUBMITTED
         \\___________\\___________\\______> REJECTED
"""
import logging
from enum import Enum
from typing import Iterable, List, Optional

from solders.pubkey import Pubkey
from solders.signature import Signature

from .errors import (
    CoordinatorStateError,
    InconsistentMessages,
    InvalidSignature,
    MissingSignatures,
    PayloadError,
    TokenWrapClientError,
)
from .transaction import (
    FullySignedTransaction,
    PartiallySignedTransaction,
    RecencyAnchor,
    SignatureMap,
    assert_fully_signed,
    required_signers,
)

logger = logging.getLogger("token_wrap.multisig")


class CoordinatorState(str, Enum):
    COLLECTING = "collecting"
    VALIDATED = "validated"
    MERGED = "merged"
    COMPLETE = "complete"
    SUBMITTED = "submitted"
    REJECTED = "rejected"


def first_divergent_index(partials: List[PartiallySignedTransaction]) -> Optional[int]:
    reference = partials[0].message_bytes
    for idx, ptx in enumerate(partials[1:], start=1):
        if len(ptx.message_bytes) != len(reference) or ptx.message_bytes != reference:
            return idx
    return None


def merge_signatures(partials: List[PartiallySignedTransaction]) -> SignatureMap:
    """Union of all signature maps, keyed in the first input's order; first present signature wins."""
    merged: SignatureMap = {}
    for addr in partials[0].signatures:
        found: Optional[Signature] = None
        for ptx in partials:
            sig = ptx.signatures.get(addr)
            if sig is not None:
                found = sig
                break
        merged[addr] = found
    return merged


def verify_present_signatures(partials: List[PartiallySignedTransaction]) -> None:
    for idx, ptx in enumerate(partials):
        for addr, sig in ptx.signatures.items():
            if sig is not None and not sig.verify(addr, ptx.message_bytes):
                raise InvalidSignature(addr, idx)


class MultisigCoordinator:
    def __init__(
        self,
        partials: Iterable[PartiallySignedTransaction] = (),
        verify_signatures: bool = True,
    ):
        self.verify_signatures = verify_signatures
        self.state = CoordinatorState.COLLECTING
        self.rejection: Optional[TokenWrapClientError] = None
        self._partials: List[PartiallySignedTransaction] = []
        self._merged: Optional[PartiallySignedTransaction] = None
        self._result: Optional[FullySignedTransaction] = None
        for ptx in partials:
            self.add(ptx)

    @property
    def partials(self) -> List[PartiallySignedTransaction]:
        return list(self._partials)

    @property
    def result(self) -> Optional[FullySignedTransaction]:
        return self._result

    def _require(self, *states: CoordinatorState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise CoordinatorStateError(f"Coordinator is {self.state.value}; expected {allowed}")

    def _reject(self, error: TokenWrapClientError) -> TokenWrapClientError:
        self.state = CoordinatorState.REJECTED
        self.rejection = error
        logger.warning("multisig_round_rejected reason=%s", error)
        return error

    def add(self, ptx: PartiallySignedTransaction) -> None:
        self._require(CoordinatorState.COLLECTING)
        self._partials.append(ptx)

    def validate(self) -> None:
        self._require(CoordinatorState.COLLECTING)
        if not self._partials:
            raise CoordinatorStateError("No partially signed transactions collected")
        idx = first_divergent_index(self._partials)
        if idx is not None:
            raise self._reject(InconsistentMessages(idx))
        expected = required_signers(self._partials[0].message)
        for idx, ptx in enumerate(self._partials):
            if list(ptx.signatures) != expected:
                raise self._reject(
                    PayloadError(f"Input {idx} does not key its signatures by the message's required signers")
                )
        if self.verify_signatures:
            try:
                verify_present_signatures(self._partials)
            except InvalidSignature as exc:
                raise self._reject(exc) from None
        self.state = CoordinatorState.VALIDATED

    def merge(self) -> PartiallySignedTransaction:
        self._require(CoordinatorState.VALIDATED)
        self._merged = PartiallySignedTransaction(
            self._partials[0].message_bytes, merge_signatures(self._partials)
        )
        self.state = CoordinatorState.MERGED
        return self._merged

    def finalize(self, lifetime: Optional[RecencyAnchor] = None) -> FullySignedTransaction:
        self._require(CoordinatorState.MERGED)
        if self._merged is None:
            raise CoordinatorStateError("Nothing has been merged")
        missing = self._merged.missing_signers()
        if missing:
            raise self._reject(MissingSignatures(missing))
        try:
            self._result = assert_fully_signed(self._merged, lifetime)
        except PayloadError as exc:
            raise self._reject(exc) from None
        self.state = CoordinatorState.COMPLETE
        logger.info(
            "multisig_round_complete inputs=%s signers=%s",
            len(self._partials),
            len(self._result.signatures),
        )
        return self._result

    def combine(self, lifetime: Optional[RecencyAnchor] = None) -> FullySignedTransaction:
        self.validate()
        self.merge()
        return self.finalize(lifetime)

    async def submit(self, rpc, commitment: Optional[str] = None) -> Signature:
        self._require(CoordinatorState.COMPLETE)
        if self._result is None:
            raise CoordinatorStateError("No combined transaction to submit")
        signature = await rpc.submit_and_confirm(self._result, commitment=commitment)
        self.state = CoordinatorState.SUBMITTED
        return signature

    def missing_signers(self) -> List[Pubkey]:
        """Who still has to sign, given what has been collected so far."""
        if not self._partials:
            return []
        return [addr for addr, sig in merge_signatures(self._partials).items() if sig is None]


def combine_multisig_txs(
    partials: Iterable[PartiallySignedTransaction],
    lifetime: Optional[RecencyAnchor] = None,
    verify_signatures: bool = True,
) -> FullySignedTransaction:
    return MultisigCoordinator(partials, verify_signatures=verify_signatures).combine(lifetime)
