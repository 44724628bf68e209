"""Console reporting and JSON artifacts."""

import json
import sys
import time
from pathlib import Path
from typing import Any, Optional, TextIO

from hexbytes import HexBytes
from web3.datastructures import AttributeDict

PASS_MARK = "✓"
FAIL_MARK = "✘"


def now_ts() -> str:
    return time.strftime("%Y-%m-%d %H:%M:%S", time.gmtime())


def log_info(msg: str) -> None:
    print(f"[{now_ts()}] {msg}", flush=True)


def log_warn(msg: str) -> None:
    print(f"[{now_ts()}] [WARN] {msg}", flush=True)


def log_error(msg: str) -> None:
    print(f"[{now_ts()}] [ERROR] {msg}", file=sys.stderr, flush=True)


def to_jsonable(obj):
    """Recursively convert Web3 AttributeDict, HexBytes, and other objects into JSON-serializable types."""
    if isinstance(obj, (AttributeDict, dict)):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(x) for x in obj]
    if isinstance(obj, HexBytes):
        return obj.to_0x_hex()
    if isinstance(obj, (bytes, bytearray)):
        return "0x" + bytes(obj).hex()
    return obj


def plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


class Reporter:
    """Prints one line per test case and the final summary."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream

    def _print(self, line: str) -> None:
        print(line, file=self.stream or sys.stdout, flush=True)

    def case(self, ok: bool, title: str, deploy: bool = False, gas: Optional[int] = None) -> str:
        mark = PASS_MARK if ok else FAIL_MARK
        label = ""
        if deploy:
            label = "successful " if ok else "failed "
        suffix = f" ({gas} gas)" if deploy and gas is not None else ""
        line = f" {mark} {label}{title}{suffix}"
        self._print(line)
        return line

    def summary(self, result) -> str:
        line = f"completed {plural(result.total, 'test')} with {plural(result.failed, 'failure')}."
        self._print(line)
        return line


class ArtifactWriter:
    """Writes receipts and outcomes as JSON under one directory."""

    def __init__(self, directory):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def save(self, name: str, obj: Any) -> Path:
        path = self.directory / f"{_safe_name(name)}.json"
        with open(path, "w") as f:
            json.dump(to_jsonable(obj), f, indent=2, sort_keys=True, default=str)
        return path


def _safe_name(name: str) -> str:
    cleaned = "".join(c if c.isalnum() or c in "-_." else "_" for c in name)
    return cleaned.strip("_")[:120] or "artifact"
