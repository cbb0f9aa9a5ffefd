import io
import json
import os
import tempfile
import unittest
from unittest.mock import MagicMock, patch

from eth_account import Account

from chronos_protocol.__main__ import build_parser, main

PRIVATE_KEY = "0x" + "11" * 32
SIGNER = Account.from_key(PRIVATE_KEY).address
WORKER = "0x" + "22" * 20


class TestCli(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        env = {
            "NETWORK": "", "CHAIN_BACKEND": "", "RPC_URL": "", "BASE_SEPOLIA_RPC_URL": "",
            "ALCHEMY_API_KEY": "", "CHRONOS_FACTORY_ADDRESS": "", "FACTORY_CONTRACT_ADDRESS": "",
            "LOG_FILE": "", "LOG_LEVEL": "WARNING",
            "PRIVATE_KEY": PRIVATE_KEY,
            "CHRONOS_WALLET_PATH": os.path.join(self.tmp.name, "signer.json"),
            "CHRONOS_DB_PATH": os.path.join(self.tmp.name, "chronos.db"),
        }
        patchers = [
            patch.dict(os.environ, env),
            patch("chronos_protocol.config.load_dotenv"),
        ]
        for patcher in patchers:
            patcher.start()
            self.addCleanup(patcher.stop)
        self.addCleanup(self.tmp.cleanup)

    def run_main(self, *argv):
        with patch("sys.stdout", new_callable=io.StringIO) as out, \
                patch("sys.stderr", new_callable=io.StringIO) as err:
            code = main(list(argv))
        return code, out.getvalue(), err.getvalue()

    def test_watch_from_block(self):
        args = build_parser().parse_args(["watch", "--from-block", "1200"])
        self.assertEqual(args.from_block, 1200)
        self.assertIsNone(build_parser().parse_args(["watch"]).from_block)

    def test_command_is_required(self):
        with patch("sys.stderr", new_callable=io.StringIO):
            with self.assertRaises(SystemExit):
                build_parser().parse_args([])

    def test_parse(self):
        code, out, _ = self.run_main("parse", f"/task @{WORKER} Build site by 2099-01-01 12:00 for 0.1 ETH")
        self.assertEqual(code, 0)
        parsed = json.loads(out)
        self.assertEqual(parsed["kind"], "task")
        self.assertEqual(parsed["task"]["counterparty"], WORKER)

    def test_parse_error(self):
        code, out, err = self.run_main("parse", "/message hello")
        self.assertEqual(code, 1)
        self.assertEqual(out, "")
        self.assertIn("Invalid wallet address format", err)

    def test_check_wallet_local(self):
        code, out, _ = self.run_main("check-wallet", "--backend", "local")
        self.assertEqual(code, 0)
        self.assertIn(f"Signer address: {SIGNER}", out)
        self.assertIn("Balance: 100.0 ETH", out)
        self.assertIn("chain id 84532", out)

    @patch("chronos_protocol.backends.web3_backend.make_web3")
    def test_check_wallet_unreachable(self, mock_make_web3):
        mock_make_web3.return_value.is_connected.return_value = False
        code, out, _ = self.run_main("check-wallet")
        self.assertEqual(code, 1)
        self.assertIn("balance unknown", out)

    @patch("chronos_protocol.backends.web3_backend.make_web3")
    def test_check_contract(self, mock_make_web3):
        w3 = mock_make_web3.return_value
        w3.is_connected.return_value = True

        w3.eth.get_code.return_value = b""
        code, out, _ = self.run_main("check-contract")
        self.assertEqual(code, 1)
        self.assertIn("NO CODE AT ADDRESS", out)

        w3.eth.get_code.return_value = b"\x60\x80"
        code, out, _ = self.run_main("check-contract", "--address", WORKER)
        self.assertEqual(code, 0)
        self.assertIn("deployed", out)
        self.assertIn("createAgreement(address,string,uint256,uint256)", out)
        self.assertIn("sepolia.basescan.org/address/", out)

    @patch("chronos_protocol.backends.web3_backend.make_web3")
    def test_gas(self, mock_make_web3):
        mock_make_web3.return_value = MagicMock()
        mock_make_web3.return_value.eth.gas_price = 2 * 10**9
        code, out, _ = self.run_main("gas", "--priority", "low")
        self.assertEqual(code, 0)
        result = json.loads(out)
        self.assertEqual(result["priority"], "low")
        self.assertEqual(result["gasPrice"], 1_800_000_000)

    @patch("chronos_protocol.backends.web3_backend.make_web3")
    def test_gas_without_price(self, mock_make_web3):
        mock_make_web3.return_value.eth.gas_price = 0
        code, _, err = self.run_main("gas")
        self.assertEqual(code, 1)
        self.assertIn("Unable to fetch current gas price", err)
