"""
Agreement model and an in-memory reference chain for the ChronoContract / ChronosFactory pair.

The reference chain enforces the same require() checks as the deployed contracts, so the
service can run (and be tested) without a node. Balances are in wei; time comes from an
injectable clock.
"""

import itertools
import threading
import time
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional

from web3 import Web3

from ..constants import ZERO_ADDRESS
from .formatting import format_ether
from .parser import is_valid_address


class AgreementState(IntEnum):
    PROPOSED = 0
    ACTIVE = 1
    COMPLETED = 2
    EXPIRED = 3
    VOIDED = 4

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @property
    def color(self) -> str:
        return STATE_COLORS[self]

    @property
    def is_terminal(self) -> bool:
        return self in (AgreementState.COMPLETED, AgreementState.EXPIRED, AgreementState.VOIDED)


STATE_COLORS = {
    AgreementState.PROPOSED: "warning",
    AgreementState.ACTIVE: "primary",
    AgreementState.COMPLETED: "success",
    AgreementState.EXPIRED: "danger",
    AgreementState.VOIDED: "secondary",
}

# Revert reasons
ONLY_COUNTERPARTY = "Only the counterparty can call this function"
ONLY_CREATOR = "Only the creator can call this function"
EXACT_VALUE = "Must send exact value for escrow"
INVALID_STATE = "Invalid state for this action"
DEADLINE_NOT_PASSED = "Deadline has not passed yet"


class AgreementError(Exception):
    """A contract call reverted. `reason` holds the revert string."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


@dataclass
class Agreement:
    address: str
    creator: str
    counterparty: str
    description: str
    deadline: int
    value: int
    state: AgreementState = AgreementState.PROPOSED

    def is_expired(self, now: Optional[float] = None) -> bool:
        current = int(now if now is not None else time.time())
        return current > self.deadline

    def available_actions(self, user: str, now: Optional[float] = None) -> List[str]:
        """Actions `user` may take right now, mirroring the contract's access rules."""
        user_l = (user or "").lower()
        actions: List[str] = []
        if user_l == self.counterparty.lower():
            if self.state == AgreementState.PROPOSED:
                actions += ["accept", "reject"]
            elif self.state == AgreementState.ACTIVE:
                actions.append("markAsDone")
        if user_l == self.creator.lower() and self.state == AgreementState.ACTIVE:
            actions.append("confirmCompletion")
            if self.is_expired(now):
                actions.append("reclaimOnExpiry")
        return actions

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.address,
            "creator": self.creator,
            "counterparty": self.counterparty,
            "description": self.description,
            "deadline": int(self.deadline),
            "value": format_ether(self.value),
            "status": int(self.state),
        }


@dataclass
class AgreementEvent:
    name: str
    address: str
    args: Dict[str, Any]
    block_number: int
    transaction_hash: str

    def to_dict(self) -> Dict[str, Any]:
        args = dict(self.args)
        if "value" in args:
            args["value"] = format_ether(args["value"])
        return {
            "event": self.name,
            "address": self.address,
            "args": args,
            "blockNumber": self.block_number,
            "transactionHash": self.transaction_hash,
        }


class LocalChain:
    """
    Minimal account/balance/event ledger standing in for the EVM.
    Every state-changing call is one "transaction" mined in its own block.
    """

    def __init__(self, clock: Callable[[], float] = time.time, chain_id: int = 31337):
        self.clock = clock
        self.chain_id = chain_id
        self.block_number = 0
        self.balances: Dict[str, int] = {}
        self.events: List[AgreementEvent] = []
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self._nonce = itertools.count()
        self._lock = threading.RLock()
        self.factory = LocalChronosFactory(self)

    def now(self) -> int:
        return int(self.clock())

    def fund(self, address: str, wei: int) -> None:
        key = Web3.to_checksum_address(address)
        with self._lock:
            self.balances[key] = self.balances.get(key, 0) + int(wei)

    def balance_of(self, address: str) -> int:
        return self.balances.get(Web3.to_checksum_address(address), 0)

    def transfer(self, sender: str, recipient: str, wei: int) -> None:
        sender = Web3.to_checksum_address(sender)
        recipient = Web3.to_checksum_address(recipient)
        if self.balances.get(sender, 0) < wei:
            raise AgreementError("Insufficient funds")
        self.balances[sender] -= wei
        self.balances[recipient] = self.balances.get(recipient, 0) + wei

    def derive_address(self, seed: str) -> str:
        return Web3.to_checksum_address(Web3.keccak(text=seed)[-20:])

    def begin_transaction(self, sender: str, action: str) -> str:
        self.block_number += 1
        return Web3.to_hex(Web3.keccak(text=f"{sender}:{action}:{next(self._nonce)}"))

    def emit(self, name: str, address: str, tx_hash: str, **args) -> AgreementEvent:
        event = AgreementEvent(
            name=name,
            address=address,
            args=args,
            block_number=self.block_number,
            transaction_hash=tx_hash,
        )
        self.events.append(event)
        return event

    def record_receipt(self, tx_hash: str, sender: str, status: int = 1) -> None:
        self.receipts[tx_hash] = {
            "transactionHash": tx_hash,
            "blockNumber": self.block_number,
            "from": sender,
            "status": status,
        }

    def get_events(self, name: Optional[str] = None, from_block: int = 0, to_block: Optional[int] = None) -> List[AgreementEvent]:
        upper = self.block_number if to_block is None else to_block
        return [
            e for e in self.events
            if (name is None or e.name == name) and from_block <= e.block_number <= upper
        ]

    def run(self, sender: str, action: str, fn: Callable[[str], Any]) -> str:
        """Executes fn(tx_hash) atomically; a revert leaves no state behind."""
        with self._lock:
            snapshot = (dict(self.balances), len(self.events), self.block_number)
            tx_hash = self.begin_transaction(sender, action)
            try:
                fn(tx_hash)
            except Exception:
                self.balances, self.block_number = snapshot[0], snapshot[2]
                del self.events[snapshot[1]:]
                raise
            self.record_receipt(tx_hash, sender)
            return tx_hash


class EscrowAgreement:
    """One ChronoContract instance."""

    def __init__(self, chain: LocalChain, address: str, creator: str, counterparty: str,
                 description: str, deadline: int, value: int):
        self.chain = chain
        self.address = address
        self.creator = Web3.to_checksum_address(creator)
        self.counterparty = Web3.to_checksum_address(counterparty)
        self.description = description
        self.deadline = int(deadline)
        self.value = int(value)
        self.state = AgreementState.PROPOSED

    def snapshot(self) -> Agreement:
        return Agreement(
            address=self.address,
            creator=self.creator,
            counterparty=self.counterparty,
            description=self.description,
            deadline=self.deadline,
            value=self.value,
            state=self.state,
        )

    # --- modifiers ---
    def _only_counterparty(self, sender: str) -> None:
        if Web3.to_checksum_address(sender) != self.counterparty:
            raise AgreementError(ONLY_COUNTERPARTY)

    def _only_creator(self, sender: str) -> None:
        if Web3.to_checksum_address(sender) != self.creator:
            raise AgreementError(ONLY_CREATOR)

    def _in_state(self, state: AgreementState) -> None:
        if self.state != state:
            raise AgreementError(INVALID_STATE)

    def _set_state(self, state: AgreementState, tx_hash: str) -> None:
        self.state = state
        self.chain.emit("StateChanged", self.address, tx_hash, newState=int(state))

    # --- contract functions ---
    def accept(self, sender: str, value: int) -> str:
        def _accept(tx_hash):
            self._only_counterparty(sender)
            self._in_state(AgreementState.PROPOSED)
            if int(value) != self.value:
                raise AgreementError(EXACT_VALUE)
            self.chain.transfer(sender, self.address, self.value)
            self._set_state(AgreementState.ACTIVE, tx_hash)

        return self._run(sender, "accept", _accept)

    def reject(self, sender: str) -> str:
        def _reject(tx_hash):
            self._only_counterparty(sender)
            self._in_state(AgreementState.PROPOSED)
            self._set_state(AgreementState.VOIDED, tx_hash)

        return self._run(sender, "reject", _reject)

    def mark_as_done(self, sender: str) -> str:
        def _mark(tx_hash):
            self._only_counterparty(sender)
            self._in_state(AgreementState.ACTIVE)
            self.chain.emit("TaskMarkedDone", self.address, tx_hash, counterparty=self.counterparty)

        return self._run(sender, "markAsDone", _mark)

    def confirm_completion(self, sender: str) -> str:
        def _confirm(tx_hash):
            self._only_creator(sender)
            self._in_state(AgreementState.ACTIVE)
            self._set_state(AgreementState.COMPLETED, tx_hash)
            self.chain.transfer(self.address, self.counterparty, self.chain.balance_of(self.address))

        return self._run(sender, "confirmCompletion", _confirm)

    def reclaim_on_expiry(self, sender: str) -> str:
        def _reclaim(tx_hash):
            self._only_creator(sender)
            self._in_state(AgreementState.ACTIVE)
            if not self.chain.now() > self.deadline:
                raise AgreementError(DEADLINE_NOT_PASSED)
            self._set_state(AgreementState.EXPIRED, tx_hash)
            self.chain.transfer(self.address, self.creator, self.chain.balance_of(self.address))

        return self._run(sender, "reclaimOnExpiry", _reclaim)

    def _run(self, sender: str, action: str, fn: Callable[[str], None]) -> str:
        previous = self.state
        try:
            return self.chain.run(sender, action, fn)
        except Exception:
            self.state = previous
            raise


class LocalChronosFactory:
    """ChronosFactory: deploys EscrowAgreements and indexes them per user."""

    def __init__(self, chain: LocalChain):
        self.chain = chain
        self.address = chain.derive_address("ChronosFactory")
        self.agreements: Dict[str, EscrowAgreement] = {}
        self.deployed: List[str] = []
        self.user_agreements: Dict[str, List[str]] = {}

    def create_agreement(self, sender: str, counterparty: str, description: str,
                         deadline: int, value: int) -> Dict[str, str]:
        """Returns {"transactionHash", "agreementAddress"}."""
        result: Dict[str, str] = {}

        def _create(tx_hash):
            if not is_valid_address(counterparty or "") or counterparty.lower() == ZERO_ADDRESS:
                raise AgreementError("Invalid counterparty address")
            creator = Web3.to_checksum_address(sender)
            other = Web3.to_checksum_address(counterparty)
            if creator == other:
                raise AgreementError("Counterparty cannot be the creator")
            if not description or not description.strip():
                raise AgreementError("Description is required")
            if int(deadline) <= self.chain.now():
                raise AgreementError("Deadline must be in the future")
            if int(value) <= 0:
                raise AgreementError("Value must be greater than zero")

            address = self.chain.derive_address(f"{self.address}:{len(self.deployed)}")
            self.agreements[address] = EscrowAgreement(
                self.chain, address, creator, other, description, deadline, value
            )
            self.deployed.append(address)
            self.user_agreements.setdefault(creator, []).append(address)
            self.user_agreements.setdefault(other, []).append(address)
            self.chain.emit(
                "AgreementCreated", self.address, tx_hash,
                creator=creator, counterparty=other, agreementAddress=address,
                description=description, deadline=int(deadline), value=int(value),
            )
            result["agreementAddress"] = address

        tx_hash = self.chain.run(sender, "createAgreement", _create)
        result["transactionHash"] = tx_hash
        return result

    def get_deployed_agreements(self) -> List[str]:
        return list(self.deployed)

    def get_user_agreements(self, user: str) -> List[str]:
        return list(self.user_agreements.get(Web3.to_checksum_address(user), []))

    def get(self, address: str) -> EscrowAgreement:
        key = Web3.to_checksum_address(address)
        if key not in self.agreements:
            raise AgreementError(f"No agreement deployed at {address}")
        return self.agreements[key]
