from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import requests
from web3 import Web3


@dataclass(frozen=True)
class NetworkInfo:
    name: str
    chain_id: int
    display_name: str
    public_rpc_url: str
    explorer_url: Optional[str] = None
    alchemy_slug: Optional[str] = None


BASE_SEPOLIA_CHAIN_ID = 84532
BASE_MAINNET_CHAIN_ID = 8453
HARDHAT_CHAIN_ID = 31337

NETWORKS: Dict[str, NetworkInfo] = {
    "base-sepolia": NetworkInfo(
        name="base-sepolia",
        chain_id=BASE_SEPOLIA_CHAIN_ID,
        display_name="Base Sepolia Testnet",
        public_rpc_url="https://sepolia.base.org",
        explorer_url="https://sepolia.basescan.org",
        alchemy_slug="base-sepolia",
    ),
    "base": NetworkInfo(
        name="base",
        chain_id=BASE_MAINNET_CHAIN_ID,
        display_name="Base",
        public_rpc_url="https://mainnet.base.org",
        explorer_url="https://basescan.org",
        alchemy_slug="base-mainnet",
    ),
    "hardhat": NetworkInfo(
        name="hardhat",
        chain_id=HARDHAT_CHAIN_ID,
        display_name="Hardhat Local Network",
        public_rpc_url="http://127.0.0.1:8545",
    ),
}


def get_network(name: str) -> NetworkInfo:
    try:
        return NETWORKS[name]
    except KeyError:
        raise ValueError(f"Unknown network '{name}'. Expected one of: {', '.join(sorted(NETWORKS))}")


def resolve_rpc_url(network: str, alchemy_api_key: Optional[str] = None, override: Optional[str] = None) -> str:
    """
    Picks the JSON-RPC endpoint for a network.
    An explicit override wins, then Alchemy (when a key is present), then the public RPC.
    """
    if override:
        return override
    info = get_network(network)
    if alchemy_api_key and info.alchemy_slug:
        return f"https://{info.alchemy_slug}.g.alchemy.com/v2/{alchemy_api_key}"
    return info.public_rpc_url


def format_chain_id_for_wallet(chain_id: Union[int, str]) -> Optional[str]:
    """
    Hex chain id padded to at least six digits, the form MetaMask expects.
    """
    try:
        value = normalize_chain_id(chain_id)
    except (TypeError, ValueError):
        return None
    if value is None:
        return None
    return "0x" + format(value, "x").rjust(6, "0")


def normalize_chain_id(chain_id: Union[int, str, None]) -> Optional[int]:
    if chain_id is None:
        return None
    if isinstance(chain_id, int):
        return chain_id
    text = str(chain_id).strip()
    if text.lower().startswith("0x"):
        return int(text, 16)
    return int(text, 10)


def analyze_chain_id(chain_id: Union[int, str]) -> Dict[str, Any]:
    normalized = normalize_chain_id(chain_id)
    expected_hex = format_chain_id_for_wallet(BASE_SEPOLIA_CHAIN_ID)
    formatted = format_chain_id_for_wallet(normalized) if normalized is not None else None
    return {
        "input": chain_id,
        "decimal": normalized,
        "correctHexFormat": formatted,
        "incorrectHexFormat": hex(normalized) if normalized else None,
        "isBaseSepoliaNetwork": normalized == BASE_SEPOLIA_CHAIN_ID,
        "baseSepoliaDecimal": BASE_SEPOLIA_CHAIN_ID,
        "baseSepoliaHex": expected_hex,
        "willWorkWithMetaMask": formatted == expected_hex,
    }


def is_chain_id_format_error(error: Any) -> bool:
    if not error:
        return False
    message = str(error)
    return any(
        marker in message
        for marker in ("Unrecognized chain ID", "wallet_switchEthereumChain", "Chain ID", "chainId")
    )


def wallet_chain_params(network: str, alchemy_api_key: Optional[str] = None) -> Dict[str, Any]:
    """Parameter block for a wallet_addEthereumChain request."""
    info = get_network(network)
    params = {
        "chainId": hex(info.chain_id),
        "chainName": info.display_name,
        "nativeCurrency": {"name": "Ethereum", "symbol": "ETH", "decimals": 18},
        "rpcUrls": [resolve_rpc_url(network, alchemy_api_key)],
    }
    if info.explorer_url:
        params["blockExplorerUrls"] = [info.explorer_url]
    return params


def explorer_url(network: str, kind: str, value: str) -> Optional[str]:
    """kind is one of 'address', 'tx' or 'block'."""
    info = get_network(network)
    if not info.explorer_url:
        return None
    if kind not in ("address", "tx", "block"):
        raise ValueError(f"Unsupported explorer link kind: {kind}")
    return f"{info.explorer_url}/{kind}/{value}"


def make_web3(rpc_url: str, timeout: int = 5) -> Web3:
    """Web3 over HTTP with a pooled requests session shared by all contract clients."""
    session = requests.Session()
    session.headers.update({"User-Agent": "chronos-protocol"})
    return Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}, session=session))
