"""Ledger client capability and its web3 implementation."""

from typing import Any, Dict, Iterable, List, Optional, Protocol

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address
from hexbytes import HexBytes
from web3 import Web3

from .report import log_info, log_warn

# Config
RECEIPT_TIMEOUT = 120
PRIORITY_FEE_GWEI = 2
TRANSFER_GAS = 21_000
DEFAULT_FUNDING_WEI = 10**18
FEE_FIELDS = ("gasPrice", "maxFeePerGas", "maxPriorityFeePerGas")


class LedgerClient(Protocol):
    """What the harness needs from a chain node."""

    def estimate_gas(self, tx: Dict[str, Any]) -> int:
        ...

    def send_transaction(self, tx: Dict[str, Any]) -> Any:
        """Submit and wait until mined; returns the receipt."""
        ...

    def call(self, tx: Dict[str, Any]) -> bytes:
        ...

    def get_transaction_count(self, account: str) -> int:
        """Count including pending transactions; the next nonce this account signs with."""
        ...

    def get_block(self, identifier: str = "latest") -> Any:
        ...


def receipt_status(receipt) -> bool:
    if receipt is None:
        return False
    return bool(receipt.get("status"))


def build_fee_params(w3: Web3, priority_gwei=PRIORITY_FEE_GWEI) -> Dict[str, int]:
    base = w3.eth.get_block("latest").get("baseFeePerGas")
    if base is None:
        return {"gasPrice": w3.eth.gas_price}
    priority = w3.to_wei(str(priority_gwei), "gwei")
    return {"maxPriorityFeePerGas": priority, "maxFeePerGas": base * 2 + priority}


def _clean(tx: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = {k: v for k, v in tx.items() if v is not None}
    if "from" in cleaned:
        cleaned["from"] = to_checksum_address(cleaned["from"])
    if "to" in cleaned:
        cleaned["to"] = to_checksum_address(cleaned["to"])
    return cleaned


class Web3Ledger:
    """
    LedgerClient over a web3 connection.

    Transactions from registered private keys are signed locally and sent raw;
    anything else is handed to the node's unlocked accounts. Every submission
    blocks until its receipt is mined.
    """

    def __init__(
        self,
        w3: Web3,
        accounts: Iterable[Any] = (),
        gas_price: Optional[int] = None,
        receipt_timeout: int = RECEIPT_TIMEOUT,
    ):
        self.w3 = w3
        self.gas_price = gas_price
        self.receipt_timeout = receipt_timeout
        self._accounts: Dict[str, LocalAccount] = {}
        for acct in accounts:
            self.add_account(acct)

    # -------------------------
    # Accounts
    # -------------------------
    def add_account(self, key_or_account) -> LocalAccount:
        if isinstance(key_or_account, LocalAccount):
            acct = key_or_account
        else:
            acct = Account.from_key(key_or_account)
        self._accounts[acct.address] = acct
        return acct

    @property
    def local_accounts(self) -> List[str]:
        return list(self._accounts)

    def default_account(self) -> str:
        if self._accounts:
            return next(iter(self._accounts))
        node_accounts = self.w3.eth.accounts
        if not node_accounts:
            raise SystemExit("cannot find enough addresses to run tests!")
        return node_accounts[0]

    def setup_account(self, private_key, funder: str, amount: int = DEFAULT_FUNDING_WEI) -> str:
        """Register a key and fund it from `funder`; warns when the account was already used."""
        acct = self.add_account(private_key)
        if self.get_transaction_count(acct.address) > 0:
            log_warn(
                f"{acct.address} has already been used, which may cause "
                "some tests to fail or to be skipped."
            )
        self.send_transaction({"from": funder, "to": acct.address, "value": amount, "gas": TRANSFER_GAS})
        return acct.address

    # -------------------------
    # LedgerClient
    # -------------------------
    def estimate_gas(self, tx: Dict[str, Any]) -> int:
        return self.w3.eth.estimate_gas(_clean(tx))

    def call(self, tx: Dict[str, Any]) -> bytes:
        return self.w3.eth.call(_clean(tx))

    def get_transaction_count(self, account: str, block_identifier: str = "pending") -> int:
        return self.w3.eth.get_transaction_count(to_checksum_address(account), block_identifier)

    def get_block(self, identifier: str = "latest"):
        return self.w3.eth.get_block(identifier)

    def block_gas_limit(self) -> int:
        return self.get_block("latest")["gasLimit"]

    def send_transaction(self, tx: Dict[str, Any]):
        tx = _clean(tx)
        acct = self._accounts.get(tx["from"])
        if acct is None:
            if self.gas_price is not None and not any(f in tx for f in FEE_FIELDS):
                tx["gasPrice"] = self.gas_price
            txh = self.w3.eth.send_transaction(tx)
        else:
            txh = self._send_signed(acct, tx)
        return self.w3.eth.wait_for_transaction_receipt(txh, timeout=self.receipt_timeout)

    def _send_signed(self, acct: LocalAccount, tx: Dict[str, Any]) -> HexBytes:
        if "chainId" not in tx:
            tx["chainId"] = self.w3.eth.chain_id
        if "nonce" not in tx:
            tx["nonce"] = self.get_transaction_count(acct.address)
        if "gas" not in tx:
            tx["gas"] = self.w3.eth.estimate_gas(tx)
        if not any(f in tx for f in FEE_FIELDS):
            if self.gas_price is not None:
                tx["gasPrice"] = self.gas_price
            else:
                tx.update(build_fee_params(self.w3))

        signed = acct.sign_transaction(tx)
        raw = signed.raw_transaction
        try:
            return self.w3.eth.send_raw_transaction(raw)
        except Exception as e:
            msg = str(e)
            # node already has it from an earlier attempt
            if "already known" in msg or "known transaction" in msg:
                return HexBytes(Web3.keccak(raw))
            raise

    # -------------------------
    # Chain control (dev nodes)
    # -------------------------
    def _rpc(self, method: str, params=()):
        resp = self.w3.provider.make_request(method, list(params))
        if resp.get("error"):
            raise RuntimeError(f"{method} failed: {resp['error']}")
        return resp.get("result")

    def increase_time(self, seconds: int):
        return self._rpc("evm_increaseTime", [seconds])

    def mine(self, blocks: int = 1) -> None:
        if blocks < 1:
            raise ValueError("must advance at least one block.")
        for _ in range(blocks):
            self._rpc("evm_mine")

    def advance_time_and_block(self, seconds: int):
        self.increase_time(seconds)
        self.mine()
        return self.get_block("latest")

    def snapshot(self):
        snapshot_id = self._rpc("evm_snapshot")
        log_info(f"took snapshot {snapshot_id}")
        return snapshot_id

    def revert(self, snapshot_id) -> bool:
        return bool(self._rpc("evm_revert", [snapshot_id]))

    def get_code(self, address: str) -> HexBytes:
        return HexBytes(self.w3.eth.get_code(to_checksum_address(address)))
