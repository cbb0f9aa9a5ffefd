import logging
import time
from typing import Any, Optional

from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from ..config import ChronosConfig
from ..core.escrow import AgreementError
from ..core.gas import GasOracle
from ..core.network import make_web3
from ..logging_config import log_contract_call

logger = logging.getLogger(__name__)

REVERT_PREFIX = "execution reverted:"


class ContractInteractionError(Exception):
    """RPC or transport failure while talking to a contract."""


class ChainUnavailableError(ContractInteractionError):
    """No chain connection or signer is configured."""


def revert_reason(error: ContractLogicError) -> str:
    message = getattr(error, "message", None) or str(error)
    if message.startswith(REVERT_PREFIX):
        message = message[len(REVERT_PREFIX):]
    return message.strip() or "Transaction reverted"


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class BaseContractClient:
    """
    Shared Web3 plumbing for the Chronos contract clients: connection, signer,
    gas pricing, and the build/sign/send/wait cycle.
    """

    def __init__(self, config: ChronosConfig, private_key: Optional[str] = None, w3: Optional[Web3] = None):
        self.config = config
        self.private_key = private_key

        if w3 is None:
            w3 = make_web3(config.resolved_rpc_url, config.request_timeout_seconds)
        self.w3 = w3
        self.gas = GasOracle(self.w3, max_gas_price_gwei=config.max_gas_price_gwei)
        self.account = self.w3.eth.account.from_key(private_key) if private_key else None
        self.chain_id = config.chain_id

    @property
    def signer_address(self) -> Optional[str]:
        return self.account.address if self.account else None

    def _gas_price(self) -> int:
        try:
            return self.gas.get_optimal_gas_price(self.config.gas_priority)["gasPrice"]
        except RuntimeError:
            return self.w3.eth.gas_price

    def _timed_call(self, name: str, address: str, fn) -> Any:
        started = time.monotonic()
        try:
            result = fn.call()
        except Exception as e:
            log_contract_call(logger, name, address, _elapsed_ms(started), success=False, error=str(e))
            raise
        log_contract_call(logger, name, address, _elapsed_ms(started))
        return result

    def _transact(self, fn, value: int = 0, gas: Optional[int] = None) -> dict:
        """
        Builds, signs and sends a contract call, then waits for its receipt.
        Raises AgreementError on revert, ContractInteractionError otherwise.
        """
        if self.account is None:
            raise ChainUnavailableError("No signer configured. Set PRIVATE_KEY.")

        try:
            # Dry run first so a revert surfaces with its reason string.
            fn.call({"from": self.account.address, "value": value})

            nonce = self.w3.eth.get_transaction_count(self.account.address)
            tx = fn.build_transaction({
                "chainId": self.chain_id,
                "from": self.account.address,
                "gas": gas or self.config.tx_gas_limit,
                "gasPrice": self._gas_price(),
                "nonce": nonce,
                "value": value,
            })

            signed_tx = self.w3.eth.account.sign_transaction(tx, self.private_key)
            tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
            logger.info(f"Sent {fn.fn_name} transaction {self.w3.to_hex(tx_hash)}")

            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.config.receipt_timeout_seconds
            )
        except ContractLogicError as e:
            raise AgreementError(revert_reason(e)) from e
        except TimeExhausted as e:
            raise ContractInteractionError(
                f"Transaction not mined within {self.config.receipt_timeout_seconds}s"
            ) from e
        except Exception as e:
            raise ContractInteractionError(str(e) or type(e).__name__) from e

        if receipt["status"] != 1:
            raise AgreementError("Transaction reverted")
        return receipt
