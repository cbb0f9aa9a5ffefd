import unittest

from chronos_protocol.core.network import (
    BASE_SEPOLIA_CHAIN_ID,
    NETWORKS,
    analyze_chain_id,
    explorer_url,
    format_chain_id_for_wallet,
    get_network,
    is_chain_id_format_error,
    make_web3,
    normalize_chain_id,
    resolve_rpc_url,
    wallet_chain_params,
)


class TestNetworks(unittest.TestCase):
    def test_known_networks(self):
        self.assertEqual(get_network("base-sepolia").chain_id, 84532)
        self.assertEqual(get_network("base").chain_id, 8453)
        self.assertEqual(get_network("hardhat").chain_id, 31337)
        self.assertEqual(set(NETWORKS), {"base-sepolia", "base", "hardhat"})

    def test_unknown_network(self):
        with self.assertRaises(ValueError):
            get_network("goerli")

    def test_resolve_rpc_url(self):
        self.assertEqual(resolve_rpc_url("base-sepolia"), "https://sepolia.base.org")
        self.assertEqual(
            resolve_rpc_url("base-sepolia", alchemy_api_key="KEY"),
            "https://base-sepolia.g.alchemy.com/v2/KEY",
        )
        self.assertEqual(resolve_rpc_url("base-sepolia", "KEY", override="http://node:8545"), "http://node:8545")
        # No Alchemy endpoint for a local node.
        self.assertEqual(resolve_rpc_url("hardhat", alchemy_api_key="KEY"), "http://127.0.0.1:8545")

    def test_explorer_url(self):
        self.assertEqual(explorer_url("base-sepolia", "tx", "0xabc"), "https://sepolia.basescan.org/tx/0xabc")
        self.assertIsNone(explorer_url("hardhat", "address", "0xabc"))
        with self.assertRaises(ValueError):
            explorer_url("base", "token", "0xabc")

    def test_make_web3_uses_rpc_url(self):
        w3 = make_web3("http://127.0.0.1:8545", timeout=3)
        self.assertEqual(w3.provider.endpoint_uri, "http://127.0.0.1:8545")


class TestChainIdUtils(unittest.TestCase):
    def test_normalize(self):
        self.assertEqual(normalize_chain_id(84532), 84532)
        self.assertEqual(normalize_chain_id("84532"), 84532)
        self.assertEqual(normalize_chain_id("0x14a34"), 84532)
        self.assertIsNone(normalize_chain_id(None))
        with self.assertRaises(ValueError):
            normalize_chain_id("base")

    def test_format_for_wallet(self):
        self.assertEqual(format_chain_id_for_wallet(84532), "0x014a34")
        self.assertEqual(format_chain_id_for_wallet("0x14a34"), "0x014a34")
        self.assertEqual(format_chain_id_for_wallet(8453), "0x002105")
        self.assertIsNone(format_chain_id_for_wallet("not a number"))

    def test_analyze(self):
        report = analyze_chain_id("0x14a34")
        self.assertEqual(report["decimal"], BASE_SEPOLIA_CHAIN_ID)
        self.assertTrue(report["isBaseSepoliaNetwork"])
        self.assertTrue(report["willWorkWithMetaMask"])
        self.assertEqual(report["incorrectHexFormat"], "0x14a34")

        other = analyze_chain_id(1)
        self.assertFalse(other["isBaseSepoliaNetwork"])
        self.assertFalse(other["willWorkWithMetaMask"])

    def test_is_chain_id_format_error(self):
        self.assertTrue(is_chain_id_format_error(Exception("Unrecognized chain ID 0x14a34")))
        self.assertTrue(is_chain_id_format_error("wallet_switchEthereumChain failed"))
        self.assertFalse(is_chain_id_format_error(Exception("user rejected")))
        self.assertFalse(is_chain_id_format_error(None))

    def test_wallet_chain_params(self):
        params = wallet_chain_params("base-sepolia")
        self.assertEqual(params["chainId"], "0x14a34")
        self.assertEqual(params["chainName"], "Base Sepolia Testnet")
        self.assertEqual(params["nativeCurrency"]["decimals"], 18)
        self.assertEqual(params["rpcUrls"], ["https://sepolia.base.org"])
        self.assertEqual(params["blockExplorerUrls"], ["https://sepolia.basescan.org"])
        self.assertNotIn("blockExplorerUrls", wallet_chain_params("hardhat"))
