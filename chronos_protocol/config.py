import os
from dataclasses import dataclass, field
from typing import Optional, Literal, Dict, Any

from dotenv import load_dotenv

from .constants import (
    CHRONOS_FACTORY_ADDRESS,
    DEFAULT_NETWORK,
    DEFAULT_CREATE_GAS_LIMIT,
    DEFAULT_TX_GAS_LIMIT,
    MAX_GAS_PRICE_GWEI,
    EVENT_POLL_INTERVAL_SECONDS,
)
from .core.network import NETWORKS, get_network, resolve_rpc_url
from .core.parser import is_valid_address

GAS_PRIORITIES = ("low", "medium", "high")
CHAIN_BACKENDS = ("web3", "local")

@dataclass
class ChronosConfig:
    """
    Configuration for the Chronos agreement service.

    Operators normally provide:
    - private_key: signer that sends agreement transactions (PRIVATE_KEY)
    - factory_address: deployed ChronosFactory (CHRONOS_FACTORY_ADDRESS)

    Optional:
    - alchemy_api_key: switches the RPC to Alchemy's Base endpoints
    - rpc_url: explicit JSON-RPC endpoint, wins over everything else
    - chain_backend: "local" runs against the in-memory reference chain
    """

    network: str = DEFAULT_NETWORK
    factory_address: str = CHRONOS_FACTORY_ADDRESS
    private_key: Optional[str] = None
    alchemy_api_key: Optional[str] = None
    rpc_url: Optional[str] = None

    chain_backend: Literal["web3", "local"] = "web3"

    # Local persistence
    db_path: str = "/tmp/chronos_protocol.db"
    wallet_path: str = "chronos_signer.json"

    # Server settings
    host: str = "0.0.0.0"
    port: int = 3001
    environment: str = "development"

    # Timeouts (seconds)
    request_timeout_seconds: int = 5
    receipt_timeout_seconds: int = 30

    # Gas settings
    create_gas_limit: int = DEFAULT_CREATE_GAS_LIMIT
    tx_gas_limit: int = DEFAULT_TX_GAS_LIMIT
    max_gas_price_gwei: float = MAX_GAS_PRICE_GWEI
    gas_priority: Literal["low", "medium", "high"] = "medium"

    # Watcher
    poll_interval_seconds: int = EVENT_POLL_INTERVAL_SECONDS

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Extra options for backends (e.g. local chain seed balances)
    backend_options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, **overrides) -> "ChronosConfig":
        """Builds a config from the process environment, loading a .env file first."""
        load_dotenv(env_file)

        values: Dict[str, Any] = {
            "network": os.getenv("NETWORK") or DEFAULT_NETWORK,
            "factory_address": os.getenv("CHRONOS_FACTORY_ADDRESS")
            or os.getenv("FACTORY_CONTRACT_ADDRESS")
            or CHRONOS_FACTORY_ADDRESS,
            "private_key": os.getenv("PRIVATE_KEY") or None,
            "alchemy_api_key": os.getenv("ALCHEMY_API_KEY") or None,
            "rpc_url": os.getenv("RPC_URL") or os.getenv("BASE_SEPOLIA_RPC_URL") or None,
            "chain_backend": os.getenv("CHAIN_BACKEND") or "web3",
            "environment": os.getenv("NODE_ENV") or os.getenv("ENVIRONMENT") or "development",
            "log_level": os.getenv("LOG_LEVEL") or "INFO",
            "log_file": os.getenv("LOG_FILE") or None,
        }
        if os.getenv("CHRONOS_WALLET_PATH"):
            values["wallet_path"] = os.getenv("CHRONOS_WALLET_PATH")
        if os.getenv("CHRONOS_DB_PATH"):
            values["db_path"] = os.getenv("CHRONOS_DB_PATH")
        if os.getenv("PORT"):
            values["port"] = int(os.getenv("PORT"))
        if os.getenv("GAS_PRIORITY"):
            values["gas_priority"] = os.getenv("GAS_PRIORITY")

        values.update(overrides)
        return cls(**values)

    @property
    def chain_id(self) -> int:
        return get_network(self.network).chain_id

    @property
    def resolved_rpc_url(self) -> str:
        return resolve_rpc_url(self.network, self.alchemy_api_key, self.rpc_url)

    def validate(self) -> None:
        errors = []

        if self.network not in NETWORKS:
            errors.append(f"Unknown network '{self.network}'")

        if self.chain_backend not in CHAIN_BACKENDS:
            errors.append(f"chain_backend must be one of {', '.join(CHAIN_BACKENDS)}")

        if self.chain_backend == "web3" and not is_valid_address(self.factory_address or ""):
            errors.append("Invalid factory contract address")

        if self.gas_priority not in GAS_PRIORITIES:
            errors.append(f"gas_priority must be one of {', '.join(GAS_PRIORITIES)}")

        if self.max_gas_price_gwei <= 0:
            errors.append("max_gas_price_gwei must be positive")

        if self.poll_interval_seconds <= 0:
            errors.append("poll_interval_seconds must be positive")

        if errors:
            raise ValueError("Configuration validation failed:\n" + "\n".join(f"- {error}" for error in errors))

    def to_public_dict(self) -> Dict[str, Any]:
        """Config details safe to log (no keys)."""
        return {
            "network": self.network,
            "chain_id": self.chain_id if self.network in NETWORKS else None,
            "factory_address": self.factory_address,
            "chain_backend": self.chain_backend,
            "host": self.host,
            "port": self.port,
            "environment": self.environment,
            "alchemy_configured": bool(self.alchemy_api_key),
            "signer_configured": bool(self.private_key),
        }
