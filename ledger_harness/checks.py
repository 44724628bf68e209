"""Result-returning predicates run against call values and receipts.

A check receives the value produced by an action (decoded return data for a
call, the receipt for a send or deploy) and returns a ``CheckResult``.  For
convenience a check may also return ``None``, ``True`` or ``1`` (pass) and
``False`` or ``0`` (fail), so ``lambda receipt: receipt["status"]`` works.
Any other return value fails. A check may also raise: ``evaluate`` turns any
exception into a failed result so an assertion can never abort the run.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass(frozen=True)
class CheckResult:
    ok: bool
    message: str = ""


PASSED = CheckResult(True)

Check = Callable[[Any], Any]


def failed(message: str) -> CheckResult:
    return CheckResult(False, message)


def no_check(value: Any) -> CheckResult:
    return PASSED


def evaluate(check: Optional[Check], value: Any) -> CheckResult:
    if check is None:
        return PASSED
    try:
        outcome = check(value)
    except Exception as e:
        return failed(f"{type(e).__name__}: {e}")

    if isinstance(outcome, CheckResult):
        return outcome
    if outcome is None:
        return PASSED
    if isinstance(outcome, int) and outcome in (0, 1):
        return PASSED if outcome else failed(f"check returned {outcome!r}")
    return failed(f"check returned unexpected value {outcome!r}")


def equals(expected: Any) -> Check:
    def check(value: Any) -> CheckResult:
        if value == expected:
            return PASSED
        return failed(f"expected {expected!r}, got {value!r}")

    return check


def satisfies(predicate: Callable[[Any], bool], message: str = "predicate not satisfied") -> Check:
    def check(value: Any) -> CheckResult:
        return PASSED if predicate(value) else failed(message)

    return check


def all_of(*checks: Check) -> Check:
    """Runs checks in order and stops at the first failure."""

    def check(value: Any) -> CheckResult:
        for c in checks:
            result = evaluate(c, value)
            if not result.ok:
                return result
        return PASSED

    return check
