import logging
import time
from typing import Callable, List, Optional

from .base import AbstractChainBackend
from ..config import ChronosConfig
from ..constants import WEI_PER_ETHER
from ..core.escrow import Agreement, AgreementEvent, LocalChain
from ..core.gas import GasOracle
from ..core.wallet import SignerWalletManager
from ..contracts.factory import CreationResult

logger = logging.getLogger(__name__)

DEFAULT_SIGNER_BALANCE_ETH = 100


class LocalBackend(AbstractChainBackend):
    """
    Runs agreements on the in-memory LocalChain. Useful for development and tests;
    nothing survives a restart.

    backend_options:
    - signer_balance_eth: ETH credited to the signer at startup (default 100)
    """

    def __init__(self, chain: Optional[LocalChain] = None, clock: Callable[[], float] = time.time):
        self.chain = chain
        self.clock = clock
        self.wallet = None

    def initialize(self, config: ChronosConfig) -> None:
        self.config = config
        if self.chain is None:
            self.chain = LocalChain(clock=self.clock, chain_id=config.chain_id)
        self.gas = GasOracle(None, max_gas_price_gwei=config.max_gas_price_gwei)
        self.wallet = SignerWalletManager(config.wallet_path, config.private_key)

        balance_eth = config.backend_options.get("signer_balance_eth", DEFAULT_SIGNER_BALANCE_ETH)
        self.chain.fund(self.wallet.address, int(balance_eth) * WEI_PER_ETHER)
        logger.info(f"Local chain backend ready: signer={self.wallet.address}, funded {balance_eth} ETH")

    @property
    def signer_address(self) -> Optional[str]:
        return self.wallet.address if self.wallet else None

    @property
    def chain_id(self) -> int:
        return self.chain.chain_id

    @property
    def factory_address(self) -> str:
        return self.chain.factory.address

    def is_available(self) -> bool:
        return self.chain is not None and self.wallet is not None

    def block_number(self) -> int:
        return self.chain.block_number

    def gas_price(self) -> int:
        return 0

    def balance_of(self, address: str) -> int:
        return self.chain.balance_of(address)

    def create_agreement(self, counterparty: str, description: str, deadline: int, value_wei: int) -> CreationResult:
        result = self.chain.factory.create_agreement(
            self.signer_address, counterparty, description, deadline, value_wei
        )
        return CreationResult(
            transaction_hash=result["transactionHash"],
            agreement_address=result["agreementAddress"],
        )

    def get_deployed_agreements(self) -> List[str]:
        return self.chain.factory.get_deployed_agreements()

    def get_user_agreements(self, address: str) -> List[str]:
        return self.chain.factory.get_user_agreements(address)

    def get_agreement(self, address: str) -> Agreement:
        return self.chain.factory.get(address).snapshot()

    def get_created_events(self, from_block: int = 0, to_block: Optional[int] = None) -> List[AgreementEvent]:
        return self.chain.get_events("AgreementCreated", from_block=from_block, to_block=to_block)

    def accept(self, address: str, value_wei: int) -> str:
        return self.chain.factory.get(address).accept(self.signer_address, value_wei)

    def reject(self, address: str) -> str:
        return self.chain.factory.get(address).reject(self.signer_address)

    def mark_as_done(self, address: str) -> str:
        return self.chain.factory.get(address).mark_as_done(self.signer_address)

    def confirm_completion(self, address: str) -> str:
        return self.chain.factory.get(address).confirm_completion(self.signer_address)

    def reclaim_on_expiry(self, address: str) -> str:
        return self.chain.factory.get(address).reclaim_on_expiry(self.signer_address)
