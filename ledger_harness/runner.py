"""The declarative test runner.

    runner = TestRunner(ledger)
    registry = runner.run_test("deploy registry", Registry, mode="deploy", args=[owner])
    runner.run_test("global key is the owner", registry, "getGlobalKey", "call",
                    check=equals(owner))
    runner.exit()

Cases execute strictly one after another: each one is mined (or answered)
before the next starts, since later cases depend on state left by earlier ones.
"""

from collections import deque
from dataclasses import replace
from typing import Any, Deque, Iterable, List, Optional, Sequence, Union

from .checks import Check
from .contracts import ContractHandle
from .errors import UnknownMethod, UnsupportedMode
from .executors import default_executors
from .ledger import LedgerClient
from .models import ActionResult, Mode, RunDefaults, RunResult, TestCase
from .report import ArtifactWriter, Reporter

COVERAGE_CONTEXT = "coverage"


def resolve_mode(mode: Union[Mode, str, None], default: Mode = Mode.SEND) -> Mode:
    if mode is None:
        return default
    if isinstance(mode, Mode):
        return mode
    try:
        return Mode(str(mode).lower())
    except ValueError:
        raise UnsupportedMode(f"must use call, send, or deploy! (got {mode!r})")


class TestRunner:
    __test__ = False  # not a pytest class

    def __init__(
        self,
        ledger: LedgerClient,
        defaults: Optional[RunDefaults] = None,
        result: Optional[RunResult] = None,
        reporter: Optional[Reporter] = None,
        executors=None,
        context: Optional[str] = None,
        artifacts: Optional[ArtifactWriter] = None,
    ):
        self.ledger = ledger
        defaults = defaults or RunDefaults()
        if defaults.sender is None and hasattr(ledger, "default_account"):
            defaults = replace(defaults, sender=ledger.default_account())
        self.defaults = defaults
        self.result = result if result is not None else RunResult()
        self.reporter = reporter or Reporter()
        self.executors = executors if executors is not None else default_executors(ledger)
        self.context = context
        self.artifacts = artifacts
        self.last_action: Optional[ActionResult] = None
        self._coverage_gas: Optional[int] = None
        self._queue: Deque[TestCase] = deque()

    def default_gas(self) -> int:
        # instrumented bytecode costs far more; give every case the whole block
        if self.context == COVERAGE_CONTEXT:
            if self._coverage_gas is None:
                self._coverage_gas = self.ledger.get_block("latest")["gasLimit"] - 1
            return self._coverage_gas
        return self.defaults.gas

    def case(
        self,
        title: str,
        target: ContractHandle,
        method: Optional[str] = None,
        mode: Union[Mode, str, None] = None,
        args: Sequence[Any] = (),
        expected_success: Optional[bool] = None,
        check: Optional[Check] = None,
        sender: Optional[str] = None,
        value: Optional[int] = None,
        gas: Optional[int] = None,
        gas_price: Optional[int] = None,
        nonce: Optional[int] = None,
    ) -> TestCase:
        """Build a TestCase, filling unset fields from the run defaults."""
        mode = resolve_mode(mode, self.defaults.mode)

        bound = None
        if mode is not Mode.DEPLOY:
            if not method:
                raise UnknownMethod(f"{title}: a {mode.value} needs a method name")
            bound = target.method(method)
            if gas is None:
                gas = self.default_gas()

        return TestCase(
            title=title,
            target=target,
            mode=mode,
            method=bound,
            args=tuple(args),
            expected_success=self.defaults.expected_success if expected_success is None else expected_success,
            check=check,
            sender=sender or self.defaults.sender,
            value=self.defaults.value if value is None else value,
            gas=gas,
            gas_price=self.defaults.gas_price if gas_price is None else gas_price,
            nonce=nonce,
        )

    def run(self, case: TestCase) -> Optional[ContractHandle]:
        executor = self.executors.get(case.mode)
        if executor is None:
            raise UnsupportedMode(f"must use call, send, or deploy! (no executor for {case.mode.value})")

        action = executor.execute(case)
        self.last_action = action
        deploy = case.mode is Mode.DEPLOY

        self.result.record(case.title, action.ok, action.gas_used if deploy else None)
        self.reporter.case(action.ok, case.title, deploy=deploy, gas=action.gas_used)
        if self.artifacts is not None:
            self._save_artifact(case, action)

        return action.handle

    def run_test(self, title: str, target: ContractHandle, method: Optional[str] = None,
                 mode: Union[Mode, str, None] = None, args: Sequence[Any] = (), **fields) -> Optional[ContractHandle]:
        return self.run(self.case(title, target, method, mode, args, **fields))

    def enqueue(self, case: TestCase) -> TestCase:
        self._queue.append(case)
        return case

    def drain(self) -> List[Optional[ContractHandle]]:
        handles = []
        while self._queue:
            handles.append(self.run(self._queue.popleft()))
        return handles

    def run_all(self, cases: Iterable[TestCase]) -> List[Optional[ContractHandle]]:
        for case in cases:
            self.enqueue(case)
        return self.drain()

    def finish(self) -> int:
        self.reporter.summary(self.result)
        return self.result.exit_code

    def exit(self):
        raise SystemExit(self.finish())

    def _save_artifact(self, case: TestCase, action: ActionResult) -> None:
        outcome = action.outcome
        self.artifacts.save(
            f"{self.result.total:04d}_{case.title}",
            {
                "title": case.title,
                "mode": case.mode.value,
                "ok": action.ok,
                "gasUsed": action.gas_used,
                "receipt": outcome.receipt if outcome else None,
                "returnValue": repr(outcome.return_value) if outcome else None,
                "error": repr(outcome.error) if outcome and outcome.error else None,
                "check": action.check_result.message if action.check_result else None,
            },
        )
