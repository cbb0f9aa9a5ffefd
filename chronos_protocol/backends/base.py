from abc import ABC, abstractmethod
from typing import List, Optional

from ..config import ChronosConfig
from ..core.escrow import Agreement, AgreementEvent, AgreementState
from ..core.gas import GasOracle
from ..contracts.factory import CreationResult


class AbstractChainBackend(ABC):
    """
    Interface for chain backends (live JSON-RPC via web3, or the in-memory local chain).
    All agreement transactions are sent from the backend's signer.
    """

    config: ChronosConfig
    gas: GasOracle

    @abstractmethod
    def initialize(self, config: ChronosConfig) -> None:
        """
        Initialize the backend: connection, signer and contract handles.
        """
        pass

    @property
    @abstractmethod
    def signer_address(self) -> Optional[str]:
        pass

    @property
    @abstractmethod
    def chain_id(self) -> int:
        pass

    @property
    @abstractmethod
    def factory_address(self) -> str:
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """True when the chain answers and a signer is configured."""
        pass

    @abstractmethod
    def block_number(self) -> int:
        pass

    @abstractmethod
    def gas_price(self) -> int:
        pass

    @abstractmethod
    def balance_of(self, address: str) -> int:
        pass

    @abstractmethod
    def create_agreement(self, counterparty: str, description: str, deadline: int, value_wei: int) -> CreationResult:
        pass

    @abstractmethod
    def get_deployed_agreements(self) -> List[str]:
        pass

    @abstractmethod
    def get_user_agreements(self, address: str) -> List[str]:
        pass

    @abstractmethod
    def get_agreement(self, address: str) -> Agreement:
        pass

    @abstractmethod
    def get_created_events(self, from_block: int = 0, to_block: Optional[int] = None) -> List[AgreementEvent]:
        pass

    @abstractmethod
    def accept(self, address: str, value_wei: int) -> str:
        pass

    @abstractmethod
    def reject(self, address: str) -> str:
        pass

    @abstractmethod
    def mark_as_done(self, address: str) -> str:
        pass

    @abstractmethod
    def confirm_completion(self, address: str) -> str:
        pass

    @abstractmethod
    def reclaim_on_expiry(self, address: str) -> str:
        pass

    def factory_function_names(self) -> List[str]:
        from ..contracts import abi_function_names, load_abi
        return abi_function_names(load_abi("ChronosFactory"))

    def transition(self, address: str, new_state: int) -> str:
        """
        Moves an agreement to `new_state` by calling the contract function that produces it:
        ACTIVE -> accept (paying the agreement value), COMPLETED -> confirmCompletion,
        EXPIRED -> reclaimOnExpiry, VOIDED -> reject.
        Raises ValueError for any other target state.
        """
        try:
            target = AgreementState(int(new_state))
        except (TypeError, ValueError):
            raise ValueError(f"Invalid state: {new_state!r}")

        if target == AgreementState.ACTIVE:
            agreement = self.get_agreement(address)
            return self.accept(address, agreement.value)
        if target == AgreementState.COMPLETED:
            return self.confirm_completion(address)
        if target == AgreementState.EXPIRED:
            return self.reclaim_on_expiry(address)
        if target == AgreementState.VOIDED:
            return self.reject(address)
        raise ValueError("Agreements cannot be moved back to Proposed")

    def shutdown(self) -> None:
        """
        Cleanup resources if needed.
        """
        pass
