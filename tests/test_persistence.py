import json
import os
import tempfile
import unittest

from eth_account import Account

from chronos_protocol.core.persistence import (
    init_db,
    log_transaction,
    recent_transactions,
    update_transaction_failed,
    update_transaction_success,
)
from chronos_protocol.core.wallet import SignerWalletManager

AGREEMENT = "0x" + "aa" * 20


class TestTransactionLog(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.tmp.name, "chronos.db")
        init_db(self.db_path)

    def tearDown(self):
        self.tmp.cleanup()

    def test_init_is_idempotent(self):
        init_db(self.db_path)
        self.assertEqual(recent_transactions(self.db_path), [])

    def test_pending_then_success(self):
        tx_id = log_transaction(self.db_path, "createAgreement")
        [row] = recent_transactions(self.db_path)
        self.assertEqual(row["tx_id"], tx_id)
        self.assertEqual(row["status"], "pending")
        self.assertIsNone(row["agreement_address"])
        self.assertIsNotNone(row["created_at"])

        update_transaction_success(self.db_path, tx_id, "0xhash", AGREEMENT)
        [row] = recent_transactions(self.db_path)
        self.assertEqual(row["status"], "succeeded")
        self.assertEqual(row["tx_hash"], "0xhash")
        self.assertEqual(row["agreement_address"], AGREEMENT)
        self.assertIsNotNone(row["completed_at"])

    def test_success_keeps_existing_address(self):
        tx_id = log_transaction(self.db_path, "accept", AGREEMENT)
        update_transaction_success(self.db_path, tx_id, "0xhash")
        self.assertEqual(recent_transactions(self.db_path)[0]["agreement_address"], AGREEMENT)

    def test_failure(self):
        tx_id = log_transaction(self.db_path, "reject", AGREEMENT)
        update_transaction_failed(self.db_path, tx_id, "Invalid state for this action")
        [row] = recent_transactions(self.db_path)
        self.assertEqual(row["status"], "failed")
        self.assertEqual(row["error"], "Invalid state for this action")
        self.assertIsNone(row["tx_hash"])

    def test_recent_is_newest_first_and_limited(self):
        ids = [log_transaction(self.db_path, f"action-{i}") for i in range(5)]
        rows = recent_transactions(self.db_path, limit=3)
        self.assertEqual([r["tx_id"] for r in rows], list(reversed(ids))[:3])


class TestSignerWalletManager(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmp.name, "signer.json")

    def tearDown(self):
        self.tmp.cleanup()

    def test_explicit_key_wins(self):
        account = Account.create()
        key = account.key.hex().removeprefix("0x")
        wallet = SignerWalletManager(self.path, private_key=key)
        self.assertEqual(wallet.address, account.address)
        self.assertEqual(wallet.private_key, "0x" + key)
        self.assertFalse(wallet.generated)
        self.assertFalse(os.path.exists(self.path))

    def test_generates_and_reloads(self):
        first = SignerWalletManager(self.path)
        self.assertTrue(first.generated)
        self.assertTrue(os.path.exists(self.path))
        self.assertEqual(Account.from_key(first.private_key).address, first.address)

        second = SignerWalletManager(self.path)
        self.assertFalse(second.generated)
        self.assertEqual(second.address, first.address)
        self.assertEqual(second.private_key, first.private_key)

    def test_corrupted_file_is_replaced(self):
        with open(self.path, "w") as f:
            f.write("{not json")
        wallet = SignerWalletManager(self.path)
        self.assertTrue(wallet.generated)
        with open(self.path) as f:
            self.assertEqual(json.load(f)["address"], wallet.address)
