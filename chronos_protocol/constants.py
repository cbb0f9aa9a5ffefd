import os

# Protocol Constants (Default: Base Sepolia)
# These should be overridden by environment variables in production.

DEFAULT_NETWORK = os.getenv("NETWORK", "base-sepolia")

# --- CONTRACTS ---
CHRONOS_FACTORY_ADDRESS = os.getenv(
    "CHRONOS_FACTORY_ADDRESS",
    os.getenv("FACTORY_CONTRACT_ADDRESS", "0x7F397AEf6B15b292f3Bcc95547Ea12EfB3572C94"),
)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# --- UNITS ---
WEI_PER_ETHER = 10**18
WEI_PER_GWEI = 10**9

# --- GAS ---
DEFAULT_CREATE_GAS_LIMIT = 3_000_000
DEFAULT_TX_GAS_LIMIT = 200_000
MAX_GAS_PRICE_GWEI = 500

# --- POLLING ---
EVENT_POLL_INTERVAL_SECONDS = 15

# --- INFRASTRUCTURE ---
BASE_FAUCET_URL = "https://faucet.base.org"
