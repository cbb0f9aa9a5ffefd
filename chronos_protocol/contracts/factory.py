import logging
from dataclasses import dataclass
from typing import List, Optional

from web3 import Web3
from web3.logs import DISCARD

from ..config import ChronosConfig
from ..core.escrow import AgreementEvent
from . import load_abi
from .base import BaseContractClient

logger = logging.getLogger(__name__)


@dataclass
class CreationResult:
    transaction_hash: str
    agreement_address: Optional[str] = None


def _event_from_log(entry) -> AgreementEvent:
    tx_hash = entry["transactionHash"]
    return AgreementEvent(
        name=entry["event"],
        address=entry["address"],
        args=dict(entry["args"]),
        block_number=entry["blockNumber"],
        transaction_hash=tx_hash if isinstance(tx_hash, str) else Web3.to_hex(tx_hash),
    )


class ChronosFactoryClient(BaseContractClient):
    """
    Client for the ChronosFactory contract, which deploys one ChronoContract per agreement.
    """

    def __init__(self, config: ChronosConfig, private_key: Optional[str] = None,
                 w3: Optional[Web3] = None, address: Optional[str] = None):
        super().__init__(config, private_key, w3)
        self.contract_address = Web3.to_checksum_address(address or config.factory_address)
        self.abi = load_abi("ChronosFactory")
        self.contract = self.w3.eth.contract(address=self.contract_address, abi=self.abi)

    def is_deployed(self) -> bool:
        code = self.w3.eth.get_code(self.contract_address)
        return len(code) > 0

    def create_agreement(self, counterparty: str, description: str, deadline: int, value_wei: int) -> CreationResult:
        """
        Deploys a new agreement. The agreement address is read from the AgreementCreated
        log; if the log is missing, the signer's most recent agreement is used.
        """
        fn = self.contract.functions.createAgreement(
            Web3.to_checksum_address(counterparty),
            description,
            int(deadline),
            int(value_wei),
        )
        receipt = self._transact(fn, gas=self.config.create_gas_limit)
        tx_hash = self.w3.to_hex(receipt["transactionHash"])

        agreement_address = None
        events = self.contract.events.AgreementCreated().process_receipt(receipt, errors=DISCARD)
        if events:
            agreement_address = events[0]["args"]["agreementAddress"]
        else:
            logger.warning(f"No AgreementCreated log in {tx_hash}, falling back to getUserAgreements")
            try:
                mine = self.get_user_agreements(self.signer_address)
                if mine:
                    agreement_address = mine[-1]
            except Exception as e:
                logger.error(f"Could not determine agreement address for {tx_hash}: {e}")

        return CreationResult(transaction_hash=tx_hash, agreement_address=agreement_address)

    def get_deployed_agreements(self) -> List[str]:
        return list(self._timed_call(
            "getDeployedAgreements", self.contract_address,
            self.contract.functions.getDeployedAgreements(),
        ))

    def get_user_agreements(self, user: str) -> List[str]:
        return list(self._timed_call(
            "getUserAgreements", self.contract_address,
            self.contract.functions.getUserAgreements(Web3.to_checksum_address(user)),
        ))

    def get_created_events(self, from_block: int = 0, to_block: Optional[int] = None) -> List[AgreementEvent]:
        logs = self.contract.events.AgreementCreated().get_logs(
            from_block=from_block,
            to_block=to_block if to_block is not None else "latest",
        )
        return [_event_from_log(entry) for entry in logs]
