import re
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS

from .backends import load_backend
from .backends.base import AbstractChainBackend
from .config import ChronosConfig
from .constants import ZERO_ADDRESS
from .contracts.base import ChainUnavailableError, ContractInteractionError
from .core.escrow import AgreementError, AgreementEvent, AgreementState
from .core.formatting import format_ether, format_gwei, parse_ether
from .core.gas import GasOracle
from .core.network import analyze_chain_id, get_network, wallet_chain_params
from .core.parser import CommandParseError, is_valid_address, parse_chat_input
from .core.persistence import (
    init_db,
    log_transaction,
    recent_transactions,
    update_transaction_failed,
    update_transaction_success,
)
from .logging_config import get_logger
from .watcher import AgreementWatcher

TX_HASH_RE = re.compile(r"^0x[a-fA-F0-9]{64}$")
SETTABLE_STATES = (
    AgreementState.ACTIVE,
    AgreementState.COMPLETED,
    AgreementState.EXPIRED,
    AgreementState.VOIDED,
)


def _legacy_placeholder(address: str, description: str, **extra) -> Dict[str, Any]:
    payload = {
        "address": address,
        "owner": ZERO_ADDRESS,
        "counterparty": ZERO_ADDRESS,
        "description": description,
        "deadline": "0",
        "state": "0",
        "value": "0",
    }
    payload.update(extra)
    return payload


class ChronosServer:
    """
    REST service in front of the ChronosFactory / ChronoContract pair.
    All transactions are signed by the configured backend's signer.
    """

    def __init__(self, config: ChronosConfig, backend: Optional[AbstractChainBackend] = None):
        self.config = config
        self.config.validate()
        self.started_at = time.time()

        self.logger = get_logger("chronos_protocol", config.log_level, config.log_file)

        # 1. Initialize Persistence
        init_db(self.config.db_path)

        # 2. Initialize Chain Backend
        self.backend = backend
        if self.backend is None:
            try:
                self.backend = load_backend(self.config)
            except Exception as e:
                # Serve anyway; chain routes answer 503 until restarted with a working setup.
                self.logger.log_error(e, {"stage": "backend_initialization", "backend": config.chain_backend})
                self.backend = None

        if self.backend is not None:
            self._log(f"Signer wallet: {self.backend.signer_address}")
            self._log(f"Factory contract: {self.backend.factory_address}")

        self.watcher: Optional[AgreementWatcher] = None

        # 3. Setup Flask
        self.app = Flask(__name__)
        self.app.chronos_server = self
        CORS(self.app)
        self._register_routes()

        self.logger.log_system_startup(self.config.to_public_dict())

    def _log(self, msg: str, **context):
        self.logger.info(msg, **context)

    @property
    def gas(self) -> GasOracle:
        if self.backend is not None:
            return self.backend.gas
        return GasOracle(None)

    def _chain_ready(self) -> bool:
        return self.backend is not None and self.backend.is_available()

    def _record(self, action: str, address: Optional[str], send: Callable[[], Any]) -> Any:
        """Runs a state-changing call and records it in the audit log."""
        tx_id = log_transaction(self.config.db_path, action, address)
        try:
            result = send()
        except Exception as e:
            update_transaction_failed(self.config.db_path, tx_id, str(e))
            self.logger.log_transaction(action, False, {"agreement_address": address}, error=e)
            raise

        tx_hash = getattr(result, "transaction_hash", result)
        created = getattr(result, "agreement_address", None)
        update_transaction_success(self.config.db_path, tx_id, tx_hash, created)
        self.logger.log_transaction(action, True, {"agreement_address": created or address, "tx_hash": tx_hash})
        return result

    def _on_agreement_created(self, event: AgreementEvent):
        args = event.args
        self._log(
            f"New agreement {args.get('agreementAddress')} between {args.get('creator')} and {args.get('counterparty')}",
            block=event.block_number,
            tx_hash=event.transaction_hash,
        )

    def _register_routes(self) -> None:
        app = self.app

        @app.route("/api/health", methods=["GET"])
        def health():
            chain_connected = self._chain_ready()
            block_number = None
            gas_price = None
            if chain_connected:
                try:
                    block_number = self.backend.block_number()
                    gas_price = format_gwei(self.backend.gas_price())
                except Exception as e:
                    self.logger.warning(f"Health probe could not read chain: {e}")

            return jsonify({
                "status": "ok",
                "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
                "environment": self.config.environment,
                "chainConnected": chain_connected,
                "contractsLoaded": self.backend is not None,
                "network": {
                    "name": self.config.network,
                    "chainId": self.backend.chain_id if self.backend is not None else self.config.chain_id,
                },
                "blockNumber": block_number,
                "gasPrice": gas_price,
                "uptime": int(time.time() - self.started_at),
                "alchemyConfigured": bool(self.config.alchemy_api_key),
            }), 200

        @app.route("/api/status", methods=["GET"])
        def get_status():
            if not self._chain_ready():
                return jsonify({"error": "Blockchain connection not initialized"}), 503
            try:
                address = self.backend.signer_address
                balance = self.backend.balance_of(address)
                return jsonify({
                    "connected": True,
                    "wallet": {
                        "address": address,
                        "balance": format_ether(balance),
                        "currency": "ETH",
                    },
                    "contracts": "loaded",
                    "chain": self.backend.chain_id,
                }), 200
            except Exception as e:
                self.logger.log_error(e, {"route": "/api/status"})
                return jsonify({"error": "Failed to get blockchain status"}), 500

        @app.route("/api/agreements", methods=["GET"])
        def list_agreements():
            if not self._chain_ready():
                return jsonify({"error": "Blockchain connection not available"}), 503

            address = request.args.get("address") or self.backend.signer_address
            if not is_valid_address(address or ""):
                return jsonify({"error": "Invalid Ethereum address format"}), 400

            try:
                agreement_addresses = self.backend.get_user_agreements(address)
            except Exception as e:
                self.logger.log_error(e, {"route": "/api/agreements", "address": address})
                return jsonify({"error": "Failed to fetch agreements"}), 500

            agreements = []
            for agreement_address in agreement_addresses:
                try:
                    agreements.append(self.backend.get_agreement(agreement_address).to_dict())
                except Exception as e:
                    self.logger.warning(f"Error fetching details for agreement {agreement_address}: {e}")
                    agreements.append({"id": agreement_address, "error": "Failed to fetch details"})

            return jsonify({"agreements": agreements}), 200

        @app.route("/api/agreements", methods=["POST"])
        def create_agreement():
            data = request.get_json(silent=True) or {}
            counterparty = data.get("counterparty")
            description = data.get("description")

            if not isinstance(counterparty, str) or not is_valid_address(counterparty):
                return jsonify({"error": "Invalid counterparty address"}), 400

            if not isinstance(description, str) or not description.strip():
                return jsonify({"error": "Description is required"}), 400

            try:
                deadline = int(data.get("deadline"))
            except (TypeError, ValueError):
                deadline = None
            if deadline is None or deadline <= int(time.time()):
                return jsonify({"error": "Deadline must be a valid future timestamp"}), 400

            try:
                value_wei = parse_ether(data.get("value"))
            except ValueError:
                value_wei = 0
            if value_wei <= 0:
                return jsonify({"error": "Value must be a positive number"}), 400

            if not self._chain_ready():
                return jsonify({"error": "Smart contract connection unavailable"}), 503

            self._log("Creating agreement", counterparty=counterparty, deadline=deadline, value=str(data.get("value")))
            try:
                result = self._record(
                    "createAgreement", None,
                    lambda: self.backend.create_agreement(counterparty, description, deadline, value_wei),
                )
            except ChainUnavailableError as e:
                return jsonify({"error": "Smart contract connection unavailable", "details": str(e)}), 503
            except (AgreementError, ContractInteractionError) as e:
                return jsonify({"error": "Failed to create agreement", "details": str(e)}), 500

            if not result.agreement_address or not is_valid_address(result.agreement_address):
                return jsonify({
                    "success": True,
                    "transactionHash": result.transaction_hash,
                    "message": "Agreement created but address could not be determined",
                }), 200

            try:
                details = self.backend.get_agreement(result.agreement_address)
            except Exception as e:
                self.logger.warning(f"Error getting agreement details: {e}")
                return jsonify({
                    "success": True,
                    "transactionHash": result.transaction_hash,
                    "agreementAddress": result.agreement_address,
                    "message": "Agreement created but details could not be retrieved",
                }), 201

            return jsonify({
                "success": True,
                "transactionHash": result.transaction_hash,
                "agreementAddress": result.agreement_address,
                "details": {
                    "creator": details.creator,
                    "counterparty": details.counterparty,
                    "description": details.description,
                    "deadline": details.deadline,
                    "value": format_ether(details.value),
                },
            }), 201

        @app.route("/api/agreements/<address>", methods=["GET"])
        def get_agreement(address):
            if not is_valid_address(address):
                return jsonify({"error": "Invalid agreement address"}), 400
            user = request.args.get("user")
            if user is not None and not is_valid_address(user):
                return jsonify({"error": "Invalid user address"}), 400
            if not self._chain_ready():
                return jsonify({"error": "Blockchain connection not available"}), 503
            try:
                agreement = self.backend.get_agreement(address)
            except Exception as e:
                self.logger.log_error(e, {"route": "/api/agreements/<address>", "address": address})
                return jsonify({"error": "Failed to fetch agreement details"}), 500
            body = {"agreement": agreement.to_dict()}
            if user is not None:
                body["actions"] = agreement.available_actions(user)
            return jsonify(body), 200

        @app.route("/api/agreements/<address>/accept", methods=["POST"])
        def accept_agreement(address):
            if not is_valid_address(address):
                return jsonify({"error": "Invalid agreement address"}), 400
            if not self._chain_ready():
                return jsonify({"error": "Blockchain connection not available"}), 503
            try:
                agreement = self.backend.get_agreement(address)
                tx_hash = self._record("accept", address, lambda: self.backend.accept(address, agreement.value))
            except ChainUnavailableError as e:
                return jsonify({"error": "Blockchain connection not available", "details": str(e)}), 503
            except Exception as e:
                return jsonify({"error": "Failed to accept agreement", "details": str(e)}), 500
            return jsonify({
                "success": True,
                "transactionHash": tx_hash,
                "message": "Agreement accepted successfully",
            }), 200

        @app.route("/api/agreement/<address>", methods=["GET"])
        def get_agreement_legacy(address):
            if not is_valid_address(address):
                return jsonify({"error": "Invalid agreement address"}), 400

            if not self._chain_ready():
                return jsonify(_legacy_placeholder(
                    address, "Contract not available", warning="Blockchain connection unavailable"
                )), 200

            try:
                agreement = self.backend.get_agreement(address)
            except Exception as e:
                self.logger.warning(f"Contract call error for {address}: {e}")
                return jsonify(_legacy_placeholder(
                    address, "Error loading contract", warning=str(e) or "Failed to load agreement data"
                )), 200

            return jsonify({
                "address": address,
                "owner": agreement.creator,
                "counterparty": agreement.counterparty,
                "description": agreement.description,
                "deadline": str(agreement.deadline),
                "state": str(int(agreement.state)),
                "value": format_ether(agreement.value),
            }), 200

        @app.route("/api/agreement/<address>/state", methods=["POST"])
        def set_agreement_state(address):
            if not is_valid_address(address):
                return jsonify({"error": "Invalid agreement address"}), 400

            data = request.get_json(silent=True) or {}
            try:
                new_state = int(data.get("newState"))
            except (TypeError, ValueError):
                new_state = None
            if new_state not in SETTABLE_STATES:
                return jsonify({"error": "Invalid state value"}), 400

            if not self._chain_ready():
                return jsonify({"error": "Blockchain connection unavailable", "recoverable": True}), 503

            try:
                tx_hash = self._record(
                    f"setState:{AgreementState(new_state).name}", address,
                    lambda: self.backend.transition(address, new_state),
                )
            except ChainUnavailableError as e:
                return jsonify({"error": str(e) or "Blockchain connection unavailable", "recoverable": True}), 503
            except AgreementError as e:
                return jsonify({"error": e.reason, "recoverable": False}), 409
            except Exception as e:
                return jsonify({
                    "error": str(e) or "Failed to update agreement state",
                    "recoverable": True,
                }), 502

            return jsonify({"success": True, "transactionHash": tx_hash, "newState": new_state}), 200

        @app.route("/api/agreement/<address>/done", methods=["POST"])
        def mark_agreement_done(address):
            if not is_valid_address(address):
                return jsonify({"error": "Invalid agreement address"}), 400
            if not self._chain_ready():
                return jsonify({"error": "Blockchain connection unavailable", "recoverable": True}), 503

            try:
                tx_hash = self._record("markAsDone", address, lambda: self.backend.mark_as_done(address))
            except ChainUnavailableError as e:
                return jsonify({"error": str(e) or "Blockchain connection unavailable", "recoverable": True}), 503
            except AgreementError as e:
                return jsonify({"error": e.reason, "recoverable": False}), 409
            except Exception as e:
                return jsonify({"error": str(e) or "Failed to mark task as done", "recoverable": True}), 502

            return jsonify({"success": True, "transactionHash": tx_hash}), 200

        @app.route("/api/gas-price", methods=["GET"])
        def gas_price():
            gas_price_wei = self.gas.get_gas_price()
            return jsonify({
                "gasPrice": format_gwei(gas_price_wei),
                "gasPriceWei": str(gas_price_wei),
            }), 200

        @app.route("/api/gas-recommendations", methods=["GET"])
        def gas_recommendations():
            return jsonify(self.gas.get_gas_recommendations()), 200

        @app.route("/api/transaction/<tx_hash>", methods=["GET"])
        def transaction_details(tx_hash):
            if not TX_HASH_RE.match(tx_hash):
                return jsonify({"error": "Invalid transaction hash"}), 400
            return jsonify(self.gas.get_transaction_details(tx_hash)), 200

        @app.route("/api/account/<address>/nonce", methods=["GET"])
        def account_nonce(address):
            if not is_valid_address(address):
                return jsonify({"error": "Invalid wallet address"}), 400
            return jsonify(self.gas.get_account_nonce(address)), 200

        @app.route("/api/contract-test", methods=["GET"])
        def contract_test():
            if self.backend is None:
                return jsonify({"error": "Contract not initialized"}), 503
            functions = self.backend.factory_function_names()
            return jsonify({
                "success": True,
                "contractAddress": self.backend.factory_address,
                "functions": functions,
                "hasCreateAgreement": "createAgreement" in functions,
            }), 200

        @app.route("/api/commands/parse", methods=["POST"])
        def parse_command():
            data = request.get_json(silent=True) or {}
            try:
                parsed = parse_chat_input(str(data.get("text") or ""))
            except CommandParseError as e:
                return jsonify({"error": str(e)}), 400
            return jsonify(parsed.to_dict()), 200

        @app.route("/api/network", methods=["GET"])
        def network_info():
            info = get_network(self.config.network)
            payload = {
                "name": info.name,
                "displayName": info.display_name,
                "chainId": info.chain_id,
                "chainIdHex": hex(info.chain_id),
                "explorerUrl": info.explorer_url,
                "walletParams": wallet_chain_params(self.config.network),
            }
            if request.args.get("chainId"):
                try:
                    payload["analysis"] = analyze_chain_id(request.args["chainId"])
                except ValueError:
                    return jsonify({"error": "Invalid chain id"}), 400
            return jsonify(payload), 200

        @app.route("/api/tx-log", methods=["GET"])
        def tx_log():
            try:
                limit = max(1, min(int(request.args.get("limit", 50)), 500))
            except ValueError:
                return jsonify({"error": "limit must be an integer"}), 400
            return jsonify({"transactions": recent_transactions(self.config.db_path, limit)}), 200

    def start_watcher(self) -> Optional[AgreementWatcher]:
        if self.backend is None:
            self._log("No chain backend; agreement watcher not started")
            return None
        if self.watcher is None:
            self.watcher = AgreementWatcher(
                self.backend,
                interval_seconds=self.config.poll_interval_seconds,
                on_event=self._on_agreement_created,
            )
        self.watcher.start()
        return self.watcher

    def run(self, host: Optional[str] = None, port: Optional[int] = None, debug: bool = False, watch: bool = True):
        host = host or self.config.host
        port = port or self.config.port
        if watch:
            self.start_watcher()
        self._log(f"Server starting on {host}:{port}")
        try:
            self.app.run(host=host, port=port, debug=debug)
        finally:
            if self.watcher is not None:
                self.watcher.stop(timeout=1)
