"""
Chat command parsing.

Supported commands:
    /task @0x<address> <description> by YYYY-MM-DD HH:MM for <amount> ETH
    /message @0x<address> [text]

Anything else is plain chat text.
"""

import re
import time
from dataclasses import dataclass, asdict
from datetime import datetime, tzinfo
from typing import Optional, Dict, Any

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
MENTION_RE = re.compile(r"@(0x[a-fA-F0-9]{40})")
DEADLINE_RE = re.compile(r"by\s+(\d{4}-\d{2}-\d{2}\s+\d{2}:\d{2})")
VALUE_RE = re.compile(r"for\s+(\d+(?:\.\d+)?)\s+(\w+)")

TASK_PREFIX = "/task"
MESSAGE_PREFIX = "/message"


class CommandParseError(ValueError):
    """Raised when a chat command is recognised but malformed."""


@dataclass
class TaskCommand:
    counterparty: str
    description: str
    deadline: int
    value: str
    token: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MessageCommand:
    recipient: str
    body: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ChatInput:
    kind: str  # "task", "message" or "text"
    text: str
    task: Optional[TaskCommand] = None
    message: Optional[MessageCommand] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "text": self.text,
            "task": self.task.to_dict() if self.task else None,
            "message": self.message.to_dict() if self.message else None,
        }


def is_valid_address(address: str) -> bool:
    return bool(address) and bool(ADDRESS_RE.match(address))


def _is_command(text: str, prefix: str) -> bool:
    """True when text starts with prefix as a whole word: "/task x" but not "/taskforce"."""
    return text == prefix or (text.startswith(prefix) and text[len(prefix)].isspace())


def _parse_deadline(date_str: str, tz: Optional[tzinfo]) -> int:
    normalized = " ".join(date_str.split())
    try:
        parsed = datetime.strptime(normalized, "%Y-%m-%d %H:%M")
    except ValueError:
        raise CommandParseError("Invalid date format. Use: YYYY-MM-DD HH:MM")
    if tz is not None:
        parsed = parsed.replace(tzinfo=tz)
    # Naive datetimes are read as local time.
    return int(parsed.timestamp())


def parse_task_command(command: str, now: Optional[float] = None, tz: Optional[tzinfo] = None) -> Optional[TaskCommand]:
    """
    Parses a /task command into a TaskCommand.
    Returns None if the text is not a /task command; raises CommandParseError if it is but is malformed.
    """
    if not _is_command(command, TASK_PREFIX):
        return None

    task_text = command[len(TASK_PREFIX):].strip()

    address_match = MENTION_RE.search(task_text)
    if not address_match:
        raise CommandParseError("Invalid counterparty address format")
    counterparty = address_match.group(1)

    date_match = DEADLINE_RE.search(task_text, address_match.end())
    if not date_match:
        raise CommandParseError("Invalid date format. Use: YYYY-MM-DD HH:MM")
    deadline = _parse_deadline(date_match.group(1), tz)

    current = int(now if now is not None else time.time())
    if deadline <= current:
        raise CommandParseError("Deadline must be in the future")

    value_match = VALUE_RE.search(task_text, date_match.end())
    if not value_match:
        raise CommandParseError("Invalid value format. Use: for [amount] [token]")
    amount, token = value_match.group(1), value_match.group(2)

    if token.lower() != "eth":
        raise CommandParseError("Only ETH is supported currently")

    description = task_text[address_match.end():date_match.start()].strip()
    if not description:
        raise CommandParseError("Task description is required")

    return TaskCommand(
        counterparty=counterparty,
        description=description,
        deadline=deadline,
        value=amount,
        token=token,
    )


def parse_message_command(command: str) -> Optional[MessageCommand]:
    if not _is_command(command, MESSAGE_PREFIX):
        return None

    message_text = command[len(MESSAGE_PREFIX):].strip()
    address_match = MENTION_RE.match(message_text)
    if not address_match:
        raise CommandParseError("Invalid wallet address format")

    return MessageCommand(
        recipient=address_match.group(1),
        body=message_text[address_match.end():].strip(),
    )


def parse_chat_input(text: str, now: Optional[float] = None, tz: Optional[tzinfo] = None) -> ChatInput:
    """Classifies one line of chat input. Raises CommandParseError for malformed commands."""
    stripped = text.strip()
    if not stripped:
        raise CommandParseError("Message is empty")

    if _is_command(stripped, TASK_PREFIX):
        return ChatInput(kind="task", text=stripped, task=parse_task_command(stripped, now=now, tz=tz))

    if _is_command(stripped, MESSAGE_PREFIX):
        return ChatInput(kind="message", text=stripped, message=parse_message_command(stripped))

    return ChatInput(kind="text", text=stripped)
