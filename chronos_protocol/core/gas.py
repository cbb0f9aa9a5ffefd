import logging
from decimal import ROUND_CEILING, Decimal
from typing import Any, Dict, Optional

from web3 import Web3
from web3.exceptions import TransactionNotFound

from ..constants import WEI_PER_GWEI

logger = logging.getLogger(__name__)

PRIORITY_MULTIPLIERS = {"low": Decimal("0.9"), "medium": Decimal("1.0"), "high": Decimal("1.1")}
PRIORITY_SECONDS = {"low": 60, "medium": 30, "high": 15}
FALLBACK_RECOMMENDATIONS = {
    "low": {"price": 0.1, "estimatedSeconds": 60},
    "medium": {"price": 0.2, "estimatedSeconds": 30},
    "high": {"price": 0.3, "estimatedSeconds": 15},
}


def _gwei(wei: int) -> Decimal:
    return Decimal(int(wei)) / Decimal(WEI_PER_GWEI)


def _to_wei(gwei: Decimal) -> int:
    return int((gwei * WEI_PER_GWEI).to_integral_value())


class GasOracle:
    """
    Gas pricing and transaction diagnostics over a Web3 connection.
    Read helpers degrade to fallback payloads instead of raising, so status pages keep rendering.
    """

    def __init__(self, w3: Optional[Web3] = None, max_gas_price_gwei: Optional[float] = None):
        self.w3 = w3
        self.max_gas_price_gwei = max_gas_price_gwei

    @property
    def available(self) -> bool:
        return self.w3 is not None

    def get_gas_price(self) -> int:
        if not self.w3:
            logger.warning("Gas price requested without an RPC connection")
            return 0
        try:
            return int(self.w3.eth.gas_price)
        except Exception as e:
            logger.error(f"Error fetching gas price: {e}")
            return 0

    def get_gas_recommendations(self) -> Dict[str, Dict[str, Any]]:
        gas_price = self.get_gas_price()
        if not gas_price:
            return {k: dict(v) for k, v in FALLBACK_RECOMMENDATIONS.items()}

        base = _gwei(gas_price)
        return {
            priority: {
                "price": float(base * multiplier),
                "estimatedSeconds": PRIORITY_SECONDS[priority],
            }
            for priority, multiplier in PRIORITY_MULTIPLIERS.items()
        }

    def get_optimal_gas_price(self, priority: str = "medium") -> Dict[str, Any]:
        """
        Gas price adjusted for priority (x0.9 / x1.0 / x1.1), capped at max_gas_price_gwei.
        Raises RuntimeError when the current price cannot be read.
        """
        if priority not in PRIORITY_MULTIPLIERS:
            priority = "medium"

        gas_price = self.get_gas_price()
        if not gas_price:
            raise RuntimeError("Unable to fetch current gas price")

        multiplier = PRIORITY_MULTIPLIERS[priority]
        # Price in wei from the exact quote; L2 quotes are often well below 0.01 gwei.
        gas_price_wei = int((Decimal(int(gas_price)) * multiplier).to_integral_value(rounding=ROUND_CEILING))
        if self.max_gas_price_gwei is not None:
            gas_price_wei = min(gas_price_wei, _to_wei(Decimal(str(self.max_gas_price_gwei))))
        priority_fee_wei = gas_price_wei // 10

        return {
            "priority": priority,
            "gasPrice": gas_price_wei,
            "maxFeePerGas": gas_price_wei,
            "maxPriorityFeePerGas": priority_fee_wei,
            "formatted": {
                "gasPrice": f"{_gwei(gas_price_wei):.2f} Gwei",
                "maxFeePerGas": f"{_gwei(gas_price_wei):.2f} Gwei",
                "maxPriorityFeePerGas": f"{_gwei(priority_fee_wei):.2f} Gwei",
            },
        }

    def get_transaction_details(self, tx_hash: str) -> Dict[str, Any]:
        if not self.w3:
            return {
                "status": "unknown",
                "error": "RPC connection not available",
                "transaction": None,
                "confirmations": 0,
            }

        try:
            try:
                tx = self.w3.eth.get_transaction(tx_hash)
            except TransactionNotFound:
                return {"status": "not-found"}

            try:
                receipt = self.w3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                receipt = None

            latest = self.w3.eth.block_number

            status, confirmations, gas_used = "pending", 0, None
            if receipt is not None:
                status = "confirmed" if receipt["status"] == 1 else "failed"
                if tx.get("blockNumber") is not None and latest:
                    confirmations = latest - tx["blockNumber"]
                gas_used = str(receipt.get("gasUsed", 0))

            return {
                "status": status,
                "confirmations": confirmations,
                "transaction": {
                    "hash": Web3.to_hex(tx["hash"]) if not isinstance(tx["hash"], str) else tx["hash"],
                    "from": tx.get("from"),
                    "to": tx.get("to"),
                    "value": str(tx.get("value", 0)),
                    "blockNumber": tx.get("blockNumber"),
                    "nonce": tx.get("nonce"),
                },
                "gasUsed": gas_used,
            }
        except Exception as e:
            logger.error(f"Error getting transaction details for {tx_hash}: {e}")
            return {
                "status": "error",
                "error": str(e) or "Unknown error",
                "transaction": None,
                "confirmations": 0,
            }

    def get_account_nonce(self, address: str) -> Dict[str, Any]:
        if not self.w3:
            return {"confirmed": 0, "pending": 0, "error": "RPC connection not available"}

        checksum = Web3.to_checksum_address(address)
        result: Dict[str, Any] = {}
        for key, block in (("confirmed", "latest"), ("pending", "pending")):
            try:
                result[key] = int(self.w3.eth.get_transaction_count(checksum, block))
            except Exception as e:
                logger.error(f"Error getting {key} nonce for {address}: {e}")
                result[key] = 0
                result["error"] = str(e)
        return result
