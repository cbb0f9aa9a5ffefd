from ..config import ChronosConfig
from .base import AbstractChainBackend


def load_backend(config: ChronosConfig) -> AbstractChainBackend:
    backend_type = config.chain_backend
    if backend_type == "local":
        from .local_backend import LocalBackend
        backend = LocalBackend()
    else:
        from .web3_backend import Web3Backend
        backend = Web3Backend()

    backend.initialize(config)
    return backend


__all__ = ["AbstractChainBackend", "load_backend"]
