"""
Deterministic deployment addresses.

A CREATE address is keccak(rlp([sender, nonce]))[12:], so a fixture that
hard-codes its address also hard-codes the deployer nonce. NonceSequencer
burns no-op transactions until the deployer sits at that nonce, and can nudge
a dev chain's block gas ceiling upward for deployments that need more room.
"""

from typing import Optional

import rlp
from eth_utils import keccak, to_canonical_address, to_checksum_address

from .errors import DeploymentAddressMismatch, GasPreconditionError
from .ledger import TRANSFER_GAS, LedgerClient
from .models import DeploymentTarget
from .report import log_info, log_warn

MAX_RAISABLE_GAS = 8_000_000
DEFAULT_RAISE_ITERATIONS = 20
MAX_RAISE_ITERATIONS = 9999


def deployment_address(sender: str, nonce: int) -> str:
    encoded = rlp.encode([to_canonical_address(sender), nonce])
    return to_checksum_address(keccak(encoded)[12:])


class NonceSequencer:
    def __init__(self, ledger: LedgerClient, gas_price: Optional[int] = None):
        self.ledger = ledger
        self.gas_price = gas_price
        self.submitted = 0

    def current_nonce(self, account: str) -> int:
        return self.ledger.get_transaction_count(account)

    def target_for(
        self, account: str, target_nonce: int, expected_address: Optional[str] = None
    ) -> DeploymentTarget:
        predicted = deployment_address(account, target_nonce)
        if expected_address is not None and to_checksum_address(expected_address) != predicted:
            raise DeploymentAddressMismatch(
                f"{account} at nonce {target_nonce} deploys to {predicted}, "
                f"not the expected {to_checksum_address(expected_address)}"
            )
        return DeploymentTarget(
            expected_address=predicted,
            from_account=to_checksum_address(account),
            current_nonce=self.current_nonce(account),
            target_nonce=target_nonce,
        )

    def advance(self, target: DeploymentTarget) -> int:
        """Submit one no-op per missing nonce. Returns how many were sent."""
        account = target.from_account
        current = self.current_nonce(account)
        if current >= target.target_nonce:
            log_warn(
                f"{account} is already at nonce {current} (target {target.target_nonce}); "
                "no transactions sent"
            )
            return 0

        budget = target.target_nonce - current
        sent = 0
        while current < target.target_nonce and sent < budget:
            self._noop(account)
            sent += 1
            current = self.current_nonce(account)
        self.submitted += sent

        if current != target.target_nonce:
            raise DeploymentAddressMismatch(
                f"{account} ended at nonce {current} after {sent} no-op transactions, "
                f"expected {target.target_nonce}"
            )
        log_info(f"advanced {account} to nonce {current} ({sent} no-op transactions)")
        return sent

    def prepare_deployment(self, handle, account: str, target_nonce: int) -> DeploymentTarget:
        """Check the handle's expected address against (account, target_nonce), then close the gap."""
        target = self.target_for(account, target_nonce, handle.expected_address)
        self.advance(target)
        return target

    def _noop(self, account: str):
        tx = {"from": account, "to": account, "value": 0, "gas": TRANSFER_GAS}
        if self.gas_price is not None:
            tx["gasPrice"] = self.gas_price
        return self.ledger.send_transaction(tx)

    def raise_gas_ceiling(
        self,
        account: str,
        required_gas: Optional[int] = None,
        max_iterations: Optional[int] = None,
    ) -> int:
        """
        Send trivial self-transfers until the block gas limit reaches
        `required_gas`. Gives up after a fixed number of blocks.
        """
        if required_gas is not None and required_gas > MAX_RAISABLE_GAS:
            raise GasPreconditionError("the gas needed is too high!")

        if required_gas is None:
            required_gas = MAX_RAISABLE_GAS
            iterations = DEFAULT_RAISE_ITERATIONS
        else:
            iterations = MAX_RAISE_ITERATIONS
        if max_iterations is not None:
            iterations = max_iterations

        limit = self.ledger.get_block("latest")["gasLimit"]
        while iterations > 0 and limit < required_gas:
            tx = {"from": account, "to": account, "value": 1, "gas": TRANSFER_GAS}
            if self.gas_price is not None:
                tx["gasPrice"] = self.gas_price
            self.ledger.send_transaction(tx)
            limit = self.ledger.get_block("latest")["gasLimit"]
            iterations -= 1

        log_info(f"raising gasLimit, currently at {limit}")
        if limit < required_gas:
            raise GasPreconditionError(
                f"block gas limit stuck at {limit}, below the required {required_gas}"
            )
        return limit
