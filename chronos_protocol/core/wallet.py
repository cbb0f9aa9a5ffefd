import os
import json
import logging
from typing import Optional

from eth_account import Account

logger = logging.getLogger(__name__)


class SignerWalletManager:
    """
    Holds the key that signs agreement transactions.
    An explicit private key (PRIVATE_KEY) wins; otherwise a key file is loaded or generated.
    A generated key holds no funds until topped up from a faucet.
    """

    def __init__(self, wallet_file_path: str, private_key: Optional[str] = None):
        self.path = wallet_file_path
        self.address = None
        self._private_key = None
        self.generated = False
        self._initialize(private_key)

    @property
    def private_key(self) -> str:
        return self._private_key

    def _initialize(self, private_key: Optional[str]):
        if private_key:
            account = Account.from_key(private_key)
            self.address = account.address
            self._private_key = private_key if private_key.startswith("0x") else "0x" + private_key
            return

        # NOTE: key file is stored unencrypted
        if os.path.exists(self.path):
            try:
                with open(self.path, "r") as f:
                    data = json.load(f)
                self.address = data["address"]
                self._private_key = data["private_key"]
                return
            except (OSError, ValueError, KeyError) as e:
                logger.warning(f"Signer wallet file {self.path} unreadable ({e}), generating a new key")
        self._generate_new()

    def _generate_new(self):
        account = Account.create()
        self.address = account.address
        self._private_key = "0x" + account.key.hex().removeprefix("0x")
        self.generated = True

        with open(self.path, "w") as f:
            json.dump({
                "address": self.address,
                "private_key": self._private_key,
            }, f)
        logger.info(f"Generated new signer wallet {self.address} at {self.path}")
