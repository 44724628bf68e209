import io
from collections import defaultdict

import pytest
from eth_abi import encode
from eth_account import Account
from eth_utils import function_signature_to_4byte_selector, to_checksum_address
from hexbytes import HexBytes

from ledger_harness.contracts import ContractHandle
from ledger_harness.nonces import deployment_address
from ledger_harness.report import Reporter
from ledger_harness.runner import TestRunner

DEPLOYER_KEY = "0xfeedfeedfeedfeedfeedfeedfeedfeedfeedfeedfeedfeedfeedfeedfeedfeed"
SECOND_KEY = "0xf00df00df00df00df00df00df00df00df00df00df00df00df00df00df00df00d"

# any bytes will do; the fake ledger never executes them
REGISTRY_BYTECODE = "0x6080604052348015600f57600080fd5b50"

REGISTRY_ABI = [
    {
        "type": "constructor",
        "inputs": [{"name": "owner", "type": "address"}],
        "stateMutability": "nonpayable",
    },
    {
        "type": "function",
        "name": "getGlobalKey",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "getSpecificKey",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "setGlobalKey",
        "inputs": [
            {"name": "globalKey", "type": "address"},
            {"name": "signature", "type": "bytes"},
        ],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    {
        "type": "function",
        "name": "counts",
        "inputs": [],
        "outputs": [
            {"name": "a", "type": "uint256"},
            {"name": "b", "type": "bool"},
        ],
        "stateMutability": "view",
    },
    {
        "type": "event",
        "name": "NewGlobalKey",
        "anonymous": False,
        "inputs": [
            {"name": "oldKey", "type": "address", "indexed": True},
            {"name": "newKey", "type": "address", "indexed": False},
        ],
    },
]


def selector(signature):
    return function_signature_to_4byte_selector(signature)


class FakeLedger:
    """In-memory LedgerClient with scripted results."""

    def __init__(self, accounts, gas_limit=8_000_000, estimate=1_500_000):
        self.accounts = [to_checksum_address(a) for a in accounts]
        self.gas_limit = gas_limit
        self.gas_limit_step = 0
        self.estimate = estimate
        self.nonces = defaultdict(int)
        self.call_results = {}
        self.send_results = {}
        self.deploy_status = 1
        self.deploy_error = None
        self.deploy_returns_address = True
        self.receipt_logs = []
        self.code = {}
        self.sent = []
        self.calls = []
        self.estimates = []

    def default_account(self):
        return self.accounts[0]

    def estimate_gas(self, tx):
        self.estimates.append(tx)
        if isinstance(self.estimate, Exception):
            raise self.estimate
        return self.estimate

    def call(self, tx):
        self.calls.append(tx)
        result = self.call_results[bytes(HexBytes(tx["data"])[:4])]
        if isinstance(result, Exception):
            raise result
        return result

    def send_transaction(self, tx):
        self.sent.append(dict(tx))
        sender = to_checksum_address(tx["from"])
        nonce = self.nonces[sender]

        if "to" not in tx:
            if self.deploy_error is not None:
                raise self.deploy_error
            self.nonces[sender] += 1
            address = deployment_address(sender, nonce) if self.deploy_returns_address else None
            return {
                "status": self.deploy_status,
                "gasUsed": 654_321,
                "contractAddress": address,
                "logs": [],
            }

        result = self.send_results.get(bytes(HexBytes(tx.get("data", b""))[:4]), 1)
        if isinstance(result, Exception):
            raise result
        self.nonces[sender] += 1
        self.gas_limit += self.gas_limit_step
        return {"status": result, "gasUsed": 21_000, "contractAddress": None, "logs": self.receipt_logs}

    def get_transaction_count(self, account):
        return self.nonces[to_checksum_address(account)]

    def get_block(self, identifier="latest"):
        return {"gasLimit": self.gas_limit}

    def get_code(self, address):
        return HexBytes(self.code.get(to_checksum_address(address), b""))


@pytest.fixture
def deployer():
    return Account.from_key(DEPLOYER_KEY)


@pytest.fixture
def second():
    return Account.from_key(SECOND_KEY)


@pytest.fixture
def ledger(deployer, second):
    return FakeLedger([deployer.address, second.address])


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def runner(ledger, output):
    return TestRunner(ledger, reporter=Reporter(stream=output))


@pytest.fixture
def registry():
    return ContractHandle("Registry", REGISTRY_ABI, bytecode=REGISTRY_BYTECODE)


@pytest.fixture
def deployed_registry(registry):
    return registry.at("0x000000000000000000000000000000000000dEaD")


def encoded(types, values):
    return encode(types, values)
