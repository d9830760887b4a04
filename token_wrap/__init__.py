from .constants import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    SYS_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    TOKEN_WRAP_PROGRAM_ID,
)
from .errors import (
    AccountNotFound,
    ConfigError,
    CoordinatorStateError,
    DecodeError,
    InconsistentMessages,
    InvalidInstructionArgs,
    InvalidSignature,
    MissingSignatures,
    PayloadError,
    SeedTooLong,
    SignerNotRequired,
    SubmissionError,
    TokenWrapClientError,
    TokenWrapProgramError,
)
from .flows import (
    create_escrow_account,
    create_mint,
    create_token_account,
    execute,
    execute_instructions,
    multisig_offline_sign_unwrap,
    multisig_offline_sign_wrap,
    single_signer_unwrap,
    single_signer_wrap,
)
from .multisig import CoordinatorState, MultisigCoordinator, combine_multisig_txs
from .pdas import backpointer_pda, escrow_address, find_pdas, wrapped_mint_authority_pda, wrapped_mint_pda
from .rpc import TokenWrapRpc
from .signers import Concrete, Placeholder, as_signer
from .transaction import (
    FullySignedTransaction,
    PartiallySignedTransaction,
    RecencyAnchor,
    apply_signatures,
    assert_fully_signed,
    build_transaction,
)
