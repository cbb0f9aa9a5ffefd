import argparse
import json
import sys
import time

from .backends import load_backend
from .config import ChronosConfig
from .constants import BASE_FAUCET_URL, EVENT_POLL_INTERVAL_SECONDS
from .contracts import abi_function_signatures, load_abi
from .core.formatting import format_ether, format_date
from .core.gas import GasOracle
from .core.network import explorer_url
from .core.parser import CommandParseError, parse_chat_input
from .logging_config import get_logger


def _config(args) -> ChronosConfig:
    overrides = {}
    if getattr(args, "backend", None):
        overrides["chain_backend"] = args.backend
    if getattr(args, "network", None):
        overrides["network"] = args.network
    return ChronosConfig.from_env(args.env_file, **overrides)


def cmd_serve(args) -> int:
    from .server import ChronosServer

    config = _config(args)
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    server = ChronosServer(config)
    server.run(watch=not args.no_watch)
    return 0


def cmd_parse(args) -> int:
    try:
        parsed = parse_chat_input(args.text)
    except CommandParseError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(json.dumps(parsed.to_dict(), indent=2))
    return 0


def cmd_check_wallet(args) -> int:
    config = _config(args)
    backend = load_backend(config)
    address = backend.signer_address
    print(f"Network: {config.network} (chain id {backend.chain_id})")
    print(f"Signer address: {address}")

    if not backend.is_available():
        print("Chain RPC not reachable; balance unknown.")
        return 1

    balance = backend.balance_of(address)
    print(f"Balance: {format_ether(balance)} ETH")
    if balance == 0:
        print("Wallet has no funds. Get Base Sepolia ETH from a faucet:")
        print(f"  {BASE_FAUCET_URL}")
    if config.network != "hardhat" and config.chain_backend == "web3":
        print(f"Explorer: {explorer_url(config.network, 'address', address)}")
    return 0


def cmd_check_contract(args) -> int:
    config = _config(args)
    if args.address:
        config.factory_address = args.address
    config.chain_backend = "web3"
    config.validate()

    backend = load_backend(config)
    if not backend.is_available():
        print(f"Chain RPC not reachable for {config.network}")
        return 1

    address = backend.factory_address
    deployed = backend.is_factory_deployed()
    print(f"Factory {address} on {config.network}: {'deployed' if deployed else 'NO CODE AT ADDRESS'}")
    print(f"Explorer: {explorer_url(config.network, 'address', address)}")
    if deployed:
        for signature in abi_function_signatures(load_abi("ChronosFactory")):
            print(f"  {signature}")
    return 0 if deployed else 1


def cmd_gas(args) -> int:
    config = _config(args)
    config.chain_backend = "web3"
    backend = load_backend(config)
    oracle: GasOracle = backend.gas
    try:
        optimal = oracle.get_optimal_gas_price(args.priority)
    except RuntimeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(json.dumps(optimal, indent=2))
    return 0


def cmd_watch(args) -> int:
    from .watcher import AgreementWatcher

    config = _config(args)
    logger = get_logger("chronos_protocol", config.log_level, config.log_file)
    backend = load_backend(config)

    def on_event(event):
        a = event.args
        print(
            f"[block {event.block_number}] agreement {a.get('agreementAddress')}: "
            f"{a.get('creator')} -> {a.get('counterparty')}, "
            f"{format_ether(a.get('value', 0))} ETH, deadline {format_date(a.get('deadline', 0))}",
            flush=True,
        )

    watcher = AgreementWatcher(backend, interval_seconds=args.interval or config.poll_interval_seconds,
                               on_event=on_event, from_block=args.from_block)
    logger.info("Watching for new agreements", factory=backend.factory_address)
    watcher.start()
    try:
        while watcher.running:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        watcher.stop(timeout=2)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chronos_protocol", description="Chronos Protocol agreement service")
    parser.add_argument("--env-file", type=str, default=None, help="Path to a .env file")
    parser.add_argument("--network", type=str, default=None, help="Network name (base-sepolia, base, hardhat)")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the REST service")
    serve.add_argument("--host", type=str, default=None, help="Host to bind")
    serve.add_argument("--port", type=int, default=None, help="Port to run the server on")
    serve.add_argument("--backend", choices=["web3", "local"], default=None, help="Chain backend")
    serve.add_argument("--no-watch", action="store_true", help="Do not poll for new agreements")
    serve.set_defaults(func=cmd_serve)

    parse = sub.add_parser("parse", help="Parse a chat command and print it as JSON")
    parse.add_argument("text", help='e.g. "/task @0x... Build site by 2030-01-01 12:00 for 0.1 ETH"')
    parse.set_defaults(func=cmd_parse)

    wallet = sub.add_parser("check-wallet", help="Show the signer address and balance")
    wallet.add_argument("--backend", choices=["web3", "local"], default=None)
    wallet.set_defaults(func=cmd_check_wallet)

    contract = sub.add_parser("check-contract", help="Verify the factory contract is deployed")
    contract.add_argument("--address", type=str, default=None, help="Factory address to check")
    contract.set_defaults(func=cmd_check_contract)

    gas = sub.add_parser("gas", help="Print the optimal gas price")
    gas.add_argument("--priority", choices=["low", "medium", "high"], default="medium")
    gas.set_defaults(func=cmd_gas)

    watch = sub.add_parser("watch", help="Print new agreements as they are created")
    watch.add_argument("--backend", choices=["web3", "local"], default=None)
    watch.add_argument("--interval", type=int, default=None, help=f"Poll interval in seconds (default {EVENT_POLL_INTERVAL_SECONDS})")
    watch.add_argument("--from-block", type=int, default=None, help="Replay agreements from this block (default: chain head)")
    watch.set_defaults(func=cmd_watch)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
