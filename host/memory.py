"""
InMemoryDialogHost: Dict-backed turn host for development and testing.

Features:
  - Explicit registration of dialogs and prompt ids
  - A dialog stack per conversation (child dialogs resume their parent on end)
  - DialogState stored serialized and rehydrated on every turn, so no
    in-process continuation survives between turns
  - State is written back only when a turn finishes without raising; a
    failing turn restores the whole stack as it was before the turn
  - Turns for the same conversation are serialized with an asyncio.Lock
  - Outgoing messages recorded per conversation

All data lost on process restart.
"""
from __future__ import annotations

import asyncio
import structlog
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, Optional, Union

from pydantic import BaseModel

from dialogs.engine import ScriptedDialog
from dialogs.errors import PromptError
from dialogs.models import (
    DialogReason, DialogState, DialogTurnStatus, OutgoingMessage, TurnResult,
)
from host.base import Activity, DialogTurn

logger = structlog.get_logger()


class DialogInstance(BaseModel):
    """One entry on a conversation's dialog stack."""
    dialog_id: str
    state: dict[str, Any] = {}                # serialized DialogState


class BotSession:
    """Session handle given to hooks and handlers."""

    def __init__(self, host: "InMemoryDialogHost", conversation_id: str):
        self.host = host
        self.conversation_id = conversation_id

    async def say(self, message: Union[str, OutgoingMessage]):
        if isinstance(message, str):
            message = OutgoingMessage(text=message)
        await self.host.deliver(self.conversation_id, message)


class MemoryDialogTurn(DialogTurn):

    def __init__(
        self,
        host: "InMemoryDialogHost",
        conversation_id: str,
        activity: Activity,
        instance: DialogInstance,
    ):
        self._host = host
        self._conversation_id = conversation_id
        self._activity = activity
        self._instance = instance
        self._state = DialogState.model_validate(instance.state)
        self._ended = False

    @property
    def state(self) -> DialogState:
        return self._state

    @property
    def activity(self) -> Activity:
        return self._activity

    async def send_message(self, message: OutgoingMessage) -> None:
        await self._host.deliver(self._conversation_id, message)

    async def prompt(self, prompt_id: str, message: OutgoingMessage) -> TurnResult:
        if not self._host.has_prompt(prompt_id):
            raise PromptError(prompt_id)
        await self.send_message(message)
        return TurnResult(status=DialogTurnStatus.WAITING)

    async def end_dialog(self, value: Any = None) -> TurnResult:
        self._ended = True
        self._host.pop_instance(self._conversation_id, self._instance)

        parent = self._host.active_instance(self._conversation_id)
        if parent is None:
            return TurnResult(status=DialogTurnStatus.COMPLETE, result=value)

        parent_turn = MemoryDialogTurn(self._host, self._conversation_id, self._activity, parent)
        dialog = self._host.get_dialog(parent.dialog_id)
        result = await dialog.resume_dialog(parent_turn, DialogReason.END_CALLED, value)
        parent_turn.commit()
        return result

    async def replace_dialog(self, dialog_id: str, options: Optional[dict[str, Any]] = None) -> TurnResult:
        dialog = self._host.get_dialog(dialog_id)
        self._ended = True
        self._host.pop_instance(self._conversation_id, self._instance)

        instance = self._host.push_instance(self._conversation_id, dialog_id)
        new_turn = MemoryDialogTurn(self._host, self._conversation_id, self._activity, instance)
        result = await dialog.begin_dialog(new_turn, options)
        new_turn.commit()
        return result

    async def spawn_session(self) -> BotSession:
        return BotSession(self._host, self._conversation_id)

    def commit(self):
        """Write the turn's state back to the stack entry."""
        if not self._ended:
            self._instance.state = self._state.model_dump()


class InMemoryDialogHost:
    """Runs ScriptedDialogs against in-memory conversations."""

    def __init__(self):
        self._dialogs: dict[str, ScriptedDialog] = {}
        self._prompts: set[str] = set()
        self._stacks: dict[str, list[DialogInstance]] = defaultdict(list)
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._pending: dict[str, int] = defaultdict(int)
        self.outbox: dict[str, list[OutgoingMessage]] = defaultdict(list)

    # ── Registration ──────────────────────────────────

    def add_dialog(self, dialog: ScriptedDialog, register_prompt: bool = True):
        """Register a dialog (and, by default, the prompt id it asks with)."""
        self._dialogs[dialog.id] = dialog
        if register_prompt:
            self.add_prompt(dialog.prompt_id)
        logger.info("dialog_registered", dialog_id=dialog.id, prompt_id=dialog.prompt_id)

    def add_prompt(self, prompt_id: str):
        self._prompts.add(prompt_id)

    def has_prompt(self, prompt_id: str) -> bool:
        return prompt_id in self._prompts

    def get_dialog(self, dialog_id: str) -> ScriptedDialog:
        try:
            return self._dialogs[dialog_id]
        except KeyError:
            raise KeyError(f"Dialog '{dialog_id}' is not registered") from None

    # ── Turns ─────────────────────────────────────────

    async def begin_dialog(
        self,
        conversation_id: str,
        dialog_id: str,
        options: Optional[dict[str, Any]] = None,
        activity: Optional[Activity] = None,
    ) -> TurnResult:
        """Push a dialog onto the conversation's stack and run its first turn."""
        dialog = self.get_dialog(dialog_id)
        activity = activity or Activity(conversation_id=conversation_id)

        async with self._turn(conversation_id):
            instance = self.push_instance(conversation_id, dialog_id)
            turn = MemoryDialogTurn(self, conversation_id, activity, instance)
            result = await dialog.begin_dialog(turn, options)
            turn.commit()
            return result

    async def receive(self, conversation_id: str, activity: Union[str, Activity]) -> TurnResult:
        """Deliver an inbound activity to the active dialog."""
        if isinstance(activity, str):
            activity = Activity(text=activity, conversation_id=conversation_id)

        async with self._turn(conversation_id):
            instance = self.active_instance(conversation_id)
            if instance is None:
                logger.debug("no_active_dialog", conversation_id=conversation_id)
                return TurnResult(status=DialogTurnStatus.EMPTY)

            dialog = self.get_dialog(instance.dialog_id)
            turn = MemoryDialogTurn(self, conversation_id, activity, instance)
            result = await dialog.continue_dialog(turn)
            turn.commit()
            return result

    async def cancel_all(self, conversation_id: str):
        """End every dialog on the stack without running their scripts."""
        async with self._turn(conversation_id):
            stack = self._stacks.pop(conversation_id, [])
            activity = Activity(conversation_id=conversation_id)
            for instance in reversed(stack):
                turn = MemoryDialogTurn(self, conversation_id, activity, instance)
                await self.get_dialog(instance.dialog_id).end_dialog(turn, DialogReason.END_CALLED)
            logger.info("dialogs_cancelled", conversation_id=conversation_id, count=len(stack))

    @asynccontextmanager
    async def _turn(self, conversation_id: str):
        """
        Serialize a turn and make it all-or-nothing.

        The stack and each entry's stored state are snapshotted once the lock
        is held; if the turn raises they are put back before re-raising.
        Lock and stack entries are dropped once a conversation has no dialog
        left and no turn waiting.
        """
        self._pending[conversation_id] += 1
        try:
            async with self._locks[conversation_id]:
                snapshot = [(i, i.state) for i in self._stacks.get(conversation_id, [])]
                try:
                    yield
                except Exception:
                    self._restore(conversation_id, snapshot)
                    raise
        finally:
            self._pending[conversation_id] -= 1
            if not self._pending[conversation_id]:
                del self._pending[conversation_id]
                if not self._stacks.get(conversation_id):
                    self._stacks.pop(conversation_id, None)
                    self._locks.pop(conversation_id, None)

    def _restore(self, conversation_id: str, snapshot: list[tuple[DialogInstance, dict[str, Any]]]):
        for instance, state in snapshot:
            instance.state = state
        if snapshot:
            self._stacks[conversation_id] = [instance for instance, _ in snapshot]
        else:
            self._stacks.pop(conversation_id, None)
        logger.warning("turn_rolled_back", conversation_id=conversation_id, depth=len(snapshot))

    # ── Stack & outbox ────────────────────────────────

    def push_instance(self, conversation_id: str, dialog_id: str) -> DialogInstance:
        instance = DialogInstance(dialog_id=dialog_id)
        self._stacks[conversation_id].append(instance)
        return instance

    def pop_instance(self, conversation_id: str, instance: DialogInstance):
        stack = self._stacks.get(conversation_id, [])
        for i in range(len(stack) - 1, -1, -1):
            if stack[i] is instance:
                del stack[i]
                return

    def active_instance(self, conversation_id: str) -> Optional[DialogInstance]:
        stack = self._stacks.get(conversation_id)
        return stack[-1] if stack else None

    def get_state(self, conversation_id: str) -> Optional[DialogState]:
        instance = self.active_instance(conversation_id)
        if instance is None:
            return None
        return DialogState.model_validate(instance.state)

    async def deliver(self, conversation_id: str, message: OutgoingMessage):
        self.outbox[conversation_id].append(message)
        logger.debug("message_delivered", conversation_id=conversation_id, text=message.text)

    def sent_text(self, conversation_id: str) -> list[str]:
        return [m.text for m in self.outbox.get(conversation_id, [])]
