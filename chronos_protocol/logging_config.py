"""
Centralized logging configuration for the Chronos agreement service.
Provides structured JSON logging with event context for transactions and contract calls.
"""

import logging
import logging.handlers
import sys
import os
import json
from datetime import datetime, timezone
from typing import Dict, Any, Optional

CONTEXT_FIELDS = ("context", "tx_context", "contract_context")
SLOW_CALL_MS = 5000


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class StructuredFormatter(logging.Formatter):
    """
    Formatter that renders each record as one JSON object.
    """

    def format(self, record):
        log_entry = {
            "timestamp": _utc_now(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for name in CONTEXT_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)

        return json.dumps(log_entry, default=str)


def log_contract_call(logger: logging.Logger, function: str, address: str, duration_ms: int,
                      success: bool = True, error: Optional[str] = None):
    """Log a read-only contract call on any stdlib logger"""
    contract_context = {
        "event_type": "contract_call",
        "function": function,
        "address": address,
        "duration_ms": duration_ms,
        "success": success,
    }
    if error:
        contract_context["error"] = error

    if not success:
        logger.warning(
            f"Contract call failed: {function} on {address}",
            extra={"contract_context": contract_context},
        )
    elif duration_ms > SLOW_CALL_MS:
        logger.warning(
            f"Slow contract call: {function} took {duration_ms}ms",
            extra={"contract_context": contract_context},
        )
    else:
        logger.debug(
            f"Contract call: {function} in {duration_ms}ms",
            extra={"contract_context": contract_context},
        )


class ChronosLogger:
    """
    Context-aware logger for the agreement service.
    """

    def __init__(self, name: str, log_level: str = "INFO", log_file: Optional[str] = None):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

        self.logger.handlers.clear()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(StructuredFormatter())
        self.logger.addHandler(console_handler)

        if log_file:
            try:
                log_dir = os.path.dirname(log_file)
                if log_dir and not os.path.exists(log_dir):
                    os.makedirs(log_dir)

                file_handler = logging.handlers.RotatingFileHandler(
                    log_file,
                    maxBytes=10 * 1024 * 1024,  # 10MB
                    backupCount=5,
                )
                file_handler.setFormatter(StructuredFormatter())
                self.logger.addHandler(file_handler)
            except OSError as e:
                self.logger.error(f"Failed to setup file logging: {e}")

    def info(self, msg: str, **context):
        self.logger.info(msg, extra={"context": context} if context else None)

    def warning(self, msg: str, **context):
        self.logger.warning(msg, extra={"context": context} if context else None)

    def log_system_startup(self, config_details: Dict[str, Any]):
        """Log startup with configuration details (no keys)"""
        startup_context = {
            "event_type": "system_startup",
            "network": config_details.get("network"),
            "chain_id": config_details.get("chain_id"),
            "server_config": {
                "host": config_details.get("host"),
                "port": config_details.get("port"),
                "environment": config_details.get("environment"),
            },
            "chain_config": {
                "backend": config_details.get("chain_backend"),
                "factory_address": config_details.get("factory_address"),
                "alchemy_configured": config_details.get("alchemy_configured", False),
                "signer_configured": config_details.get("signer_configured", False),
            },
        }

        self.logger.info(
            "Chronos agreement service startup successful",
            extra={"context": startup_context},
        )

    def log_transaction(self, action: str, success: bool, details: Dict[str, Any],
                        error: Optional[Exception] = None):
        """Log a state-changing transaction and its outcome"""
        tx_context = {
            "event_type": "transaction",
            "action": action,
            "success": success,
            "agreement_address": details.get("agreement_address"),
            "tx_hash": details.get("tx_hash"),
            "value": details.get("value"),
            "timestamp": _utc_now(),
        }

        if error is not None:
            tx_context["error"] = {"type": type(error).__name__, "message": str(error)}

        if success:
            self.logger.info(
                f"Transaction succeeded: {action}",
                extra={"tx_context": tx_context},
            )
        else:
            self.logger.error(
                f"Transaction failed: {action}: {error if error is not None else 'Unknown error'}",
                extra={"tx_context": tx_context},
            )

    def log_contract_call(self, function: str, address: str, duration_ms: int,
                          success: bool = True, error: Optional[str] = None):
        """Log a read-only contract call"""
        log_contract_call(self.logger, function, address, duration_ms, success, error)

    def log_error(self, error: Exception, context: Dict[str, Any] = None, severity: str = "ERROR"):
        """Log errors with context and stack trace"""
        error_context = {
            "event_type": "error",
            "error_type": type(error).__name__,
            "error_message": str(error),
            "timestamp": _utc_now(),
        }

        if context:
            error_context["context"] = context

        log_method = getattr(self.logger, severity.lower(), self.logger.error)
        log_method(
            f"Error occurred: {type(error).__name__}: {str(error)}",
            extra={"context": error_context},
            exc_info=error,
        )


def get_logger(name: str, log_level: str = "INFO", log_file: Optional[str] = None) -> ChronosLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (usually module name)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path

    Returns:
        Configured ChronosLogger instance
    """
    return ChronosLogger(name, log_level, log_file)
