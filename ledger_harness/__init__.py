"""Declarative call/send/deploy test harness for contracts on a live or simulated chain."""

from .checks import CheckResult, all_of, equals, evaluate, failed, satisfies
from .config import HarnessConfig, connect, ledger_from_config, runner_from_config
from .contracts import ContractHandle, ContractMethod, DecodedEvent, load_artifact
from .errors import (
    DeploymentAddressMismatch,
    FatalPrecondition,
    GasPreconditionError,
    UnknownMethod,
    UnsupportedMode,
)
from .ledger import LedgerClient, Web3Ledger
from .models import (
    ActionResult,
    DeploymentTarget,
    Mode,
    RunDefaults,
    RunResult,
    TestCase,
    TransactionOutcome,
)
from .nonces import NonceSequencer, deployment_address
from .runner import TestRunner
from .signing import double_hash, recover_signer, sign_prefixed_digest, sign_prefixed_hashed

__all__ = [
    "ActionResult",
    "CheckResult",
    "ContractHandle",
    "ContractMethod",
    "DecodedEvent",
    "DeploymentAddressMismatch",
    "DeploymentTarget",
    "FatalPrecondition",
    "GasPreconditionError",
    "HarnessConfig",
    "LedgerClient",
    "Mode",
    "NonceSequencer",
    "RunDefaults",
    "RunResult",
    "TestCase",
    "TestRunner",
    "TransactionOutcome",
    "UnknownMethod",
    "UnsupportedMode",
    "Web3Ledger",
    "all_of",
    "connect",
    "deployment_address",
    "double_hash",
    "equals",
    "evaluate",
    "failed",
    "ledger_from_config",
    "load_artifact",
    "recover_signer",
    "runner_from_config",
    "satisfies",
    "sign_prefixed_digest",
    "sign_prefixed_hashed",
]
