import logging
from typing import Optional

from web3 import Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from ..config import ChronosConfig
from ..core.escrow import Agreement, AgreementState
from . import load_abi
from .base import BaseContractClient

logger = logging.getLogger(__name__)


class ChronoContractClient(BaseContractClient):
    """
    Client for a single ChronoContract escrow agreement.
    """

    def __init__(self, config: ChronosConfig, address: str, private_key: Optional[str] = None,
                 w3: Optional[Web3] = None):
        super().__init__(config, private_key, w3)
        self.contract_address = Web3.to_checksum_address(address)
        self.abi = load_abi("ChronoContract")
        self.contract = self.w3.eth.contract(address=self.contract_address, abi=self.abi)

    def get_state(self) -> AgreementState:
        return AgreementState(self._timed_call(
            "getStatus", self.contract_address, self.contract.functions.getStatus()
        ))

    def get_details(self) -> Agreement:
        functions = self.contract.functions
        try:
            creator, counterparty, description, deadline, value = self._timed_call(
                "getAgreementDetails", self.contract_address, functions.getAgreementDetails()
            )
            state = self.get_state()
        except (ContractLogicError, BadFunctionCallOutput) as e:
            # Older deployments lack the aggregate getters.
            logger.debug(f"getAgreementDetails unavailable on {self.contract_address}: {e}")
            creator = functions.creator().call()
            counterparty = functions.counterparty().call()
            description = functions.description().call()
            deadline = functions.deadline().call()
            value = functions.value().call()
            state = AgreementState(functions.state().call())

        return Agreement(
            address=self.contract_address,
            creator=creator,
            counterparty=counterparty,
            description=description,
            deadline=int(deadline),
            value=int(value),
            state=state,
        )

    def _send(self, fn, value: int = 0) -> str:
        receipt = self._transact(fn, value=value)
        return self.w3.to_hex(receipt["transactionHash"])

    def accept(self, value_wei: int) -> str:
        return self._send(self.contract.functions.accept(), value=int(value_wei))

    def reject(self) -> str:
        return self._send(self.contract.functions.reject())

    def mark_as_done(self) -> str:
        return self._send(self.contract.functions.markAsDone())

    def confirm_completion(self) -> str:
        return self._send(self.contract.functions.confirmCompletion())

    def reclaim_on_expiry(self) -> str:
        return self._send(self.contract.functions.reclaimOnExpiry())
