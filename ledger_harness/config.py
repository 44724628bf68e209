"""Environment-driven configuration.

ENV VARS:
    RPC_URL             node endpoint (required to connect)
    PRIVATE_KEYS        comma/whitespace separated keys; the first is the default sender
    TESTING_CONTEXT     "coverage" gives every case the whole block gas limit
    DEFAULT_GAS         gas budget for calls and sends (default 6009006)
    GAS_PRICE           wei; unset means node price / EIP-1559 fees
    RECEIPT_TIMEOUT     seconds to wait for a receipt (default 120)
    ARTIFACT_DIR        when set, every case is dumped there as JSON
    POA                 truthy to inject the extra-data PoA middleware
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from dotenv import load_dotenv
from web3 import Web3
from web3.middleware import ExtraDataToPOAMiddleware

from .ledger import RECEIPT_TIMEOUT, Web3Ledger
from .models import DEFAULT_GAS, RunDefaults
from .report import ArtifactWriter, Reporter, log_info
from .runner import TestRunner

TRUTHY = ("1", "true", "yes", "on")


def _int_env(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw, 0)
    except ValueError:
        raise SystemExit(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class HarnessConfig:
    rpc_url: Optional[str] = None
    private_keys: Tuple[str, ...] = field(default_factory=tuple, repr=False)
    testing_context: Optional[str] = None
    default_gas: int = DEFAULT_GAS
    gas_price: Optional[int] = None
    receipt_timeout: int = RECEIPT_TIMEOUT
    artifact_dir: Optional[str] = None
    poa: bool = False

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "HarnessConfig":
        load_dotenv(dotenv_path)
        keys_raw = os.getenv("PRIVATE_KEYS", "")
        keys = tuple(k.strip() for k in keys_raw.replace(",", " ").split() if k.strip())
        return cls(
            rpc_url=os.getenv("RPC_URL") or None,
            private_keys=keys,
            testing_context=os.getenv("TESTING_CONTEXT") or None,
            default_gas=_int_env("DEFAULT_GAS", DEFAULT_GAS),
            gas_price=_int_env("GAS_PRICE", None),
            receipt_timeout=_int_env("RECEIPT_TIMEOUT", RECEIPT_TIMEOUT),
            artifact_dir=os.getenv("ARTIFACT_DIR") or None,
            poa=os.getenv("POA", "").strip().lower() in TRUTHY,
        )

    def run_defaults(self) -> RunDefaults:
        return RunDefaults(gas=self.default_gas, gas_price=self.gas_price)

    def artifact_writer(self) -> Optional[ArtifactWriter]:
        if not self.artifact_dir:
            return None
        return ArtifactWriter(self.artifact_dir)


def connect(config: HarnessConfig) -> Web3:
    if not config.rpc_url:
        raise SystemExit("RPC_URL required")
    w3 = Web3(Web3.HTTPProvider(config.rpc_url))
    if config.poa:
        w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
    if not w3.is_connected():
        raise SystemExit(f"Failed to connect to RPC at {config.rpc_url}")
    log_info(f"Connected to {config.rpc_url} chainId={w3.eth.chain_id}")
    return w3


def ledger_from_config(config: HarnessConfig, w3: Optional[Web3] = None) -> Web3Ledger:
    w3 = w3 or connect(config)
    ledger = Web3Ledger(
        w3,
        accounts=config.private_keys,
        gas_price=config.gas_price,
        receipt_timeout=config.receipt_timeout,
    )
    if ledger.local_accounts:
        log_info(f"Local accounts loaded: {ledger.local_accounts}")
    return ledger


def runner_from_config(
    config: HarnessConfig,
    ledger=None,
    reporter: Optional[Reporter] = None,
) -> TestRunner:
    """TestRunner with the configured gas defaults, testing context and artifact directory."""
    ledger = ledger if ledger is not None else ledger_from_config(config)
    return TestRunner(
        ledger,
        defaults=config.run_defaults(),
        reporter=reporter,
        context=config.testing_context,
        artifacts=config.artifact_writer(),
    )
