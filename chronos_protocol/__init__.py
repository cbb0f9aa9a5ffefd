from .config import ChronosConfig
from .server import ChronosServer
from .contracts import load_abi
from .core.escrow import Agreement, AgreementError, AgreementState
from .core.parser import parse_chat_input, parse_task_command, parse_message_command

__all__ = [
    "ChronosConfig",
    "ChronosServer",
    "load_abi",
    "Agreement",
    "AgreementError",
    "AgreementState",
    "parse_chat_input",
    "parse_task_command",
    "parse_message_command",
]
