"""
Host Turn Contract: what a dialog needs from the turn-delivery framework.

The host receives and sends messages, stores DialogState per conversation
and serializes turns per conversation. A DialogTurn is the host's view of one
turn of one conversation, scoped to the dialog currently on top of its stack.

Implementations:
  - InMemoryDialogHost (host/memory.py): dict-backed, single-process
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel

from dialogs.models import DialogState, OutgoingMessage, TurnResult


class Activity(BaseModel):
    """A normalized inbound activity, as produced by a channel adapter."""
    type: str = "message"                     # message | typing | conversation_update | ...
    text: str = ""
    conversation_id: str = ""
    user_id: str = ""
    channel_data: dict[str, Any] = {}


class DialogTurn(ABC):
    """Interface that every host must implement for a dialog turn."""

    @property
    @abstractmethod
    def state(self) -> DialogState:
        ...

    @property
    @abstractmethod
    def activity(self) -> Activity:
        ...

    @abstractmethod
    async def send_message(self, message: OutgoingMessage) -> None:
        ...

    @abstractmethod
    async def prompt(self, prompt_id: str, message: OutgoingMessage) -> TurnResult:
        """Send the message and wait for the reply. Raises PromptError if prompt_id is unknown."""

    @abstractmethod
    async def end_dialog(self, value: Any = None) -> TurnResult:
        ...

    @abstractmethod
    async def replace_dialog(self, dialog_id: str, options: Optional[dict[str, Any]] = None) -> TurnResult:
        ...

    @abstractmethod
    async def spawn_session(self) -> Any:
        """A session-scoped handle for hooks and handlers (e.g. to send side messages)."""
