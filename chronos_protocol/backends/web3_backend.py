import logging
from typing import List, Optional

from web3 import Web3

from .base import AbstractChainBackend
from ..config import ChronosConfig
from ..core.escrow import Agreement, AgreementEvent
from ..core.gas import GasOracle
from ..core.network import make_web3
from ..core.wallet import SignerWalletManager
from ..contracts.agreement import ChronoContractClient
from ..contracts.base import ChainUnavailableError
from ..contracts.factory import ChronosFactoryClient, CreationResult

logger = logging.getLogger(__name__)


class Web3Backend(AbstractChainBackend):
    """
    Talks to the deployed ChronosFactory / ChronoContract pair over JSON-RPC.
    """

    def __init__(self, w3: Optional[Web3] = None):
        self.w3 = w3
        self.factory = None
        self.wallet = None

    def initialize(self, config: ChronosConfig) -> None:
        self.config = config
        if self.w3 is None:
            self.w3 = make_web3(config.resolved_rpc_url, config.request_timeout_seconds)
        self.gas = GasOracle(self.w3, max_gas_price_gwei=config.max_gas_price_gwei)
        self.wallet = SignerWalletManager(config.wallet_path, config.private_key)
        self.factory = ChronosFactoryClient(config, self.wallet.private_key, w3=self.w3)
        logger.info(f"Web3 backend ready: rpc={config.network}, signer={self.wallet.address}, "
                    f"factory={self.factory.contract_address}")

    def _agreement(self, address: str) -> ChronoContractClient:
        return ChronoContractClient(self.config, address, self.wallet.private_key, w3=self.w3)

    def _require_chain(self) -> None:
        if not self.is_available():
            raise ChainUnavailableError(f"Chain RPC not reachable for network {self.config.network}")

    @property
    def signer_address(self) -> Optional[str]:
        return self.wallet.address if self.wallet else None

    @property
    def chain_id(self) -> int:
        return self.config.chain_id

    @property
    def factory_address(self) -> str:
        return self.factory.contract_address

    def is_available(self) -> bool:
        try:
            return bool(self.w3.is_connected())
        except Exception as e:
            logger.warning(f"RPC connectivity check failed: {e}")
            return False

    def is_factory_deployed(self) -> bool:
        return self.factory.is_deployed()

    def block_number(self) -> int:
        return int(self.w3.eth.block_number)

    def gas_price(self) -> int:
        return self.gas.get_gas_price()

    def balance_of(self, address: str) -> int:
        return int(self.w3.eth.get_balance(Web3.to_checksum_address(address)))

    def create_agreement(self, counterparty: str, description: str, deadline: int, value_wei: int) -> CreationResult:
        self._require_chain()
        return self.factory.create_agreement(counterparty, description, deadline, value_wei)

    def get_deployed_agreements(self) -> List[str]:
        self._require_chain()
        return self.factory.get_deployed_agreements()

    def get_user_agreements(self, address: str) -> List[str]:
        self._require_chain()
        return self.factory.get_user_agreements(address)

    def get_agreement(self, address: str) -> Agreement:
        self._require_chain()
        return self._agreement(address).get_details()

    def get_created_events(self, from_block: int = 0, to_block: Optional[int] = None) -> List[AgreementEvent]:
        return self.factory.get_created_events(from_block=from_block, to_block=to_block)

    def accept(self, address: str, value_wei: int) -> str:
        self._require_chain()
        return self._agreement(address).accept(value_wei)

    def reject(self, address: str) -> str:
        self._require_chain()
        return self._agreement(address).reject()

    def mark_as_done(self, address: str) -> str:
        self._require_chain()
        return self._agreement(address).mark_as_done()

    def confirm_completion(self, address: str) -> str:
        self._require_chain()
        return self._agreement(address).confirm_completion()

    def reclaim_on_expiry(self, address: str) -> str:
        self._require_chain()
        return self._agreement(address).reclaim_on_expiry()
