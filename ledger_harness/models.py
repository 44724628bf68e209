"""Data model shared by the runner, the executors and the nonce sequencer."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .checks import Check, CheckResult
from .contracts import ContractHandle, ContractMethod

DEFAULT_GAS = 6_009_006


class Mode(str, Enum):
    CALL = "call"
    SEND = "send"
    DEPLOY = "deploy"


@dataclass(frozen=True)
class TestCase:
    """One declarative ledger interaction. Consumed once by the runner."""

    __test__ = False  # not a pytest class

    title: str
    target: ContractHandle
    mode: Mode
    method: Optional[ContractMethod] = None
    args: Tuple[Any, ...] = ()
    expected_success: bool = True
    check: Optional[Check] = None
    sender: Optional[str] = None
    value: int = 0
    gas: Optional[int] = None
    gas_price: Optional[int] = None
    nonce: Optional[int] = None


@dataclass(frozen=True)
class TransactionOutcome:
    succeeded: bool
    receipt: Optional[Any] = None
    return_value: Any = None
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class ActionResult:
    """What an executor hands back to the runner."""

    ok: bool
    handle: Optional[ContractHandle] = None
    gas_used: Optional[int] = None
    outcome: Optional[TransactionOutcome] = None
    check_result: Optional[CheckResult] = None


@dataclass(frozen=True)
class DeploymentTarget:
    expected_address: str
    from_account: str
    current_nonce: int
    target_nonce: int

    @property
    def gap(self) -> int:
        return self.target_nonce - self.current_nonce


@dataclass
class RunDefaults:
    """Values used for every field a test case leaves unset."""

    mode: Mode = Mode.SEND
    expected_success: bool = True
    gas: int = DEFAULT_GAS
    sender: Optional[str] = None
    value: int = 0
    gas_price: Optional[int] = None


@dataclass
class RunResult:
    """Caller-owned pass/fail ledger for one run."""

    passed: int = 0
    failed: int = 0
    failures: List[str] = field(default_factory=list)
    gas_used: Dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.passed + self.failed

    @property
    def exit_code(self) -> int:
        return 1 if self.failed > 0 else 0

    def record(self, title: str, ok: bool, gas_used: Optional[int] = None) -> None:
        if ok:
            self.passed += 1
        else:
            self.failed += 1
            self.failures.append(title)
        if gas_used is not None:
            self.gas_used[title] = gas_used
