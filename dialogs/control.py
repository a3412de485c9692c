"""
Conversation control handle passed to hooks and option handlers.

It wraps the StepContext of the step being resolved. Moving the step with
goto_thread() is how a hook redirects the conversation; the engine notices
the move and restarts resolution at the new position.
"""
from __future__ import annotations

from typing import Any

from dialogs.errors import UnknownThreadError
from dialogs.models import StepContext
from dialogs.script import Script


class ConversationControl:

    def __init__(self, step: StepContext, script: Script):
        self._step = step
        self._script = script

    @property
    def vars(self) -> dict[str, Any]:
        return self._step.values

    @property
    def options(self) -> dict[str, Any]:
        return self._step.options

    @property
    def thread(self) -> str:
        return self._step.thread

    @property
    def step_index(self) -> int:
        return self._step.index

    def set_var(self, key: str, value: Any):
        self._step.values[key] = value

    def goto_thread(self, thread: str):
        if not self._script.has_thread(thread):
            raise UnknownThreadError(thread)
        self._step.thread = thread
        self._step.index = 0

    def __repr__(self):
        return f"<ConversationControl {self._step.thread}[{self._step.index}]>"
