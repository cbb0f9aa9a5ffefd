import unittest
from unittest.mock import MagicMock, PropertyMock

from web3.exceptions import TransactionNotFound

from chronos_protocol.core.gas import FALLBACK_RECOMMENDATIONS, GasOracle

TX_HASH = "0x" + "ab" * 32
TX_BYTES = bytes.fromhex(TX_HASH[2:])
ACCOUNT = "0x" + "cd" * 20
GWEI = 10**9


def mock_w3(gas_price=2 * GWEI):
    w3 = MagicMock()
    w3.eth.gas_price = gas_price
    w3.eth.block_number = 110
    return w3


class TestGasPricing(unittest.TestCase):
    def test_no_connection_falls_back(self):
        oracle = GasOracle(None)
        self.assertFalse(oracle.available)
        self.assertEqual(oracle.get_gas_price(), 0)
        self.assertEqual(oracle.get_gas_recommendations(), FALLBACK_RECOMMENDATIONS)
        with self.assertRaises(RuntimeError):
            oracle.get_optimal_gas_price()

    def test_rpc_failure_falls_back(self):
        w3 = MagicMock()
        type(w3.eth).gas_price = PropertyMock(side_effect=ConnectionError("down"))
        oracle = GasOracle(w3)
        self.assertEqual(oracle.get_gas_price(), 0)
        self.assertEqual(oracle.get_gas_recommendations()["medium"]["price"], 0.2)

    def test_recommendations(self):
        recs = GasOracle(mock_w3()).get_gas_recommendations()
        self.assertAlmostEqual(recs["low"]["price"], 1.8)
        self.assertAlmostEqual(recs["medium"]["price"], 2.0)
        self.assertAlmostEqual(recs["high"]["price"], 2.2)
        self.assertEqual(
            [recs[p]["estimatedSeconds"] for p in ("low", "medium", "high")],
            [60, 30, 15],
        )

    def test_optimal_gas_price(self):
        result = GasOracle(mock_w3()).get_optimal_gas_price("high")
        self.assertEqual(result["priority"], "high")
        self.assertEqual(result["gasPrice"], 2_200_000_000)
        self.assertEqual(result["maxFeePerGas"], result["gasPrice"])
        self.assertEqual(result["maxPriorityFeePerGas"], 220_000_000)
        self.assertEqual(result["formatted"]["gasPrice"], "2.20 Gwei")
        self.assertEqual(result["formatted"]["maxPriorityFeePerGas"], "0.22 Gwei")

    def test_unknown_priority_is_medium(self):
        self.assertEqual(GasOracle(mock_w3()).get_optimal_gas_price("ludicrous")["priority"], "medium")

    def test_optimal_price_is_capped(self):
        oracle = GasOracle(mock_w3(gas_price=900 * GWEI), max_gas_price_gwei=500)
        result = oracle.get_optimal_gas_price("medium")
        self.assertEqual(result["gasPrice"], 500 * GWEI)

    def test_sub_cent_quotes_keep_full_precision(self):
        # 0.004 gwei, a typical Base quote
        oracle = GasOracle(mock_w3(gas_price=4_000_000))
        for priority, expected in (("low", 3_600_000), ("medium", 4_000_000), ("high", 4_400_000)):
            with self.subTest(priority=priority):
                result = oracle.get_optimal_gas_price(priority)
                self.assertGreaterEqual(result["gasPrice"], expected)
                self.assertEqual(result["formatted"]["gasPrice"], "0.00 Gwei")

    def test_price_is_never_below_scaled_quote(self):
        result = GasOracle(mock_w3(gas_price=14_000_001)).get_optimal_gas_price("low")
        self.assertGreaterEqual(result["gasPrice"], 14_000_001 * 9 / 10)
        self.assertEqual(result["maxPriorityFeePerGas"], result["gasPrice"] // 10)


class TestTransactionDiagnostics(unittest.TestCase):
    def test_no_connection(self):
        self.assertEqual(GasOracle(None).get_transaction_details(TX_HASH)["status"], "unknown")

    def test_not_found(self):
        w3 = mock_w3()
        w3.eth.get_transaction.side_effect = TransactionNotFound("missing")
        self.assertEqual(GasOracle(w3).get_transaction_details(TX_HASH), {"status": "not-found"})

    def test_pending(self):
        w3 = mock_w3()
        w3.eth.get_transaction.return_value = {"hash": TX_BYTES, "blockNumber": None, "value": 0}
        w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("pending")
        details = GasOracle(w3).get_transaction_details(TX_HASH)
        self.assertEqual(details["status"], "pending")
        self.assertEqual(details["confirmations"], 0)
        self.assertEqual(details["transaction"]["hash"], TX_HASH)

    def test_confirmed_and_failed(self):
        for status, expected in ((1, "confirmed"), (0, "failed")):
            with self.subTest(status=status):
                w3 = mock_w3()
                w3.eth.get_transaction.return_value = {
                    "hash": TX_BYTES, "from": ACCOUNT, "to": ACCOUNT,
                    "value": 10**18, "blockNumber": 100, "nonce": 4,
                }
                w3.eth.get_transaction_receipt.return_value = {"status": status, "gasUsed": 21000}
                details = GasOracle(w3).get_transaction_details(TX_HASH)
                self.assertEqual(details["status"], expected)
                self.assertEqual(details["confirmations"], 10)
                self.assertEqual(details["gasUsed"], "21000")
                self.assertEqual(details["transaction"]["value"], str(10**18))

    def test_rpc_error(self):
        w3 = mock_w3()
        w3.eth.get_transaction.side_effect = ConnectionError("boom")
        details = GasOracle(w3).get_transaction_details(TX_HASH)
        self.assertEqual(details["status"], "error")
        self.assertEqual(details["error"], "boom")

    def test_account_nonce(self):
        w3 = mock_w3()
        w3.eth.get_transaction_count.side_effect = lambda address, block: 5 if block == "latest" else 7
        self.assertEqual(GasOracle(w3).get_account_nonce(ACCOUNT), {"confirmed": 5, "pending": 7})

    def test_account_nonce_without_connection(self):
        result = GasOracle(None).get_account_nonce(ACCOUNT)
        self.assertEqual((result["confirmed"], result["pending"]), (0, 0))
        self.assertIn("error", result)
