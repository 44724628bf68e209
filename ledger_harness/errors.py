"""Fatal harness errors.

Per-case ledger errors never leave the executors; the only things that stop a
run early are fixture or configuration mistakes, raised as SystemExit so the
process ends with status 1 and the message on stderr.
"""


class FatalPrecondition(SystemExit):
    """A fixture/configuration error: no meaningful test outcome exists."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class UnsupportedMode(FatalPrecondition):
    pass


class UnknownMethod(FatalPrecondition):
    pass


class GasPreconditionError(FatalPrecondition):
    pass


class DeploymentAddressMismatch(FatalPrecondition):
    pass
