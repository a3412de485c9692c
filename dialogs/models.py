"""
Scripted Dialog Models: lines, branch rules, persisted state, turn results.

A script is a mapping of thread name → ordered list of lines. Every line is
one of three shapes:

  message:  text variants / attachments / quick replies, optional trailing action
  question: a message plus a `collect` block (capture key + branch options)
  action:   a bare control action (no body required)

Lines are validated when they are added to a script, so the engine never has
to second-guess their shape at execution time.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Callable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from dialogs.errors import StepAlreadyAdvancedError
from utils.matching import compile_pattern


# ──────────────────────────────────────────────────────────────
#  Enums
# ──────────────────────────────────────────────────────────────

class OptionType(str, Enum):
    STRING = "string"
    REGEX = "regex"


class DialogReason(str, Enum):
    """Why the engine is running a step."""
    BEGIN_CALLED = "begin_called"
    CONTINUE_CALLED = "continue_called"
    NEXT_CALLED = "next_called"
    END_CALLED = "end_called"
    REPLACE_CALLED = "replace_called"


class DialogTurnStatus(str, Enum):
    EMPTY = "empty"
    WAITING = "waiting"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


class EndStatus(str, Enum):
    """Terminal tag written to values["_status"]."""
    COMPLETED = "completed"
    CANCELED = "canceled"
    TIMEOUT = "timeout"


# Reserved action tokens. Any other token is treated as a thread name.
ACTION_NEXT = "next"
ACTION_COMPLETE = "complete"
ACTION_STOP = "stop"
ACTION_TIMEOUT = "timeout"
ACTION_EXECUTE_SCRIPT = "execute_script"
ACTION_REPEAT = "repeat"
ACTION_WAIT = "wait"


# ──────────────────────────────────────────────────────────────
#  Branch rules
# ──────────────────────────────────────────────────────────────

class QuickReply(BaseModel):
    title: str
    payload: str


class ExecuteSpec(BaseModel):
    """Target of an execute_script action."""
    script: str
    thread: str = "default"


class CollectOption(BaseModel):
    """
    One branch rule for a question.

    The pattern is tested against the user's reply; `default` marks the
    fallback taken when no other rule matches. `handler`, when set, runs in
    place of the action token: async fn(response, convo, bot).
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    type: OptionType = OptionType.STRING
    pattern: str = ""
    default: bool = False
    action: str = ""
    execute: Optional[ExecuteSpec] = None
    handler: Optional[Callable[..., Any]] = None

    @model_validator(mode="after")
    def _check_rule(self) -> "CollectOption":
        if not self.default:
            if not self.pattern:
                raise ValueError("non-default collect option requires a pattern")
            try:
                compile_pattern(self.pattern)
            except re.error as exc:
                raise ValueError(f"invalid pattern '{self.pattern}': {exc}") from exc
        if self.action == ACTION_EXECUTE_SCRIPT and not self.execute:
            raise ValueError("execute_script action requires an 'execute' block")
        return self


class CollectSpec(BaseModel):
    key: str = ""
    multiple: bool = False
    options: list[CollectOption] = []

    @field_validator("options")
    @classmethod
    def _single_default(cls, options: list[CollectOption]) -> list[CollectOption]:
        if sum(1 for o in options if o.default) > 1:
            raise ValueError("at most one collect option may be marked default")
        return options


# ──────────────────────────────────────────────────────────────
#  Lines
# ──────────────────────────────────────────────────────────────

class BaseLine(BaseModel):
    text: list[str] = []                           # variants, one picked per send
    quick_replies: list[QuickReply] = []
    attachments: list[Any] = []
    channel_data: dict[str, Any] = {}

    @field_validator("text", mode="before")
    @classmethod
    def _wrap_text(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @property
    def has_body(self) -> bool:
        return bool(self.text or self.attachments or self.channel_data or self.quick_replies)


class MessageLine(BaseLine):
    kind: Literal["message"] = "message"
    action: str = ""                               # optional trailing action
    execute: Optional[ExecuteSpec] = None

    @model_validator(mode="after")
    def _check_execute(self) -> "MessageLine":
        if self.action == ACTION_EXECUTE_SCRIPT and not self.execute:
            raise ValueError("execute_script action requires an 'execute' block")
        return self


class ActionLine(BaseLine):
    kind: Literal["action"] = "action"
    action: str
    execute: Optional[ExecuteSpec] = None

    @model_validator(mode="after")
    def _check_action(self) -> "ActionLine":
        if not self.action:
            raise ValueError("action line requires an action")
        if self.action == ACTION_EXECUTE_SCRIPT and not self.execute:
            raise ValueError("execute_script action requires an 'execute' block")
        return self


class QuestionLine(BaseLine):
    kind: Literal["question"] = "question"
    collect: CollectSpec


Line = Annotated[Union[MessageLine, QuestionLine, ActionLine], Field(discriminator="kind")]


# ──────────────────────────────────────────────────────────────
#  Outgoing message
# ──────────────────────────────────────────────────────────────

class CardAction(BaseModel):
    type: str = "postBack"
    title: str
    text: str
    display_text: str
    value: str


class OutgoingMessage(BaseModel):
    """A rendered line, ready for the host to deliver."""
    type: str = "message"
    text: str = ""
    suggested_actions: list[CardAction] = []
    attachments: list[Any] = []
    channel_data: dict[str, Any] = {}


# ──────────────────────────────────────────────────────────────
#  Persisted dialog state
# ──────────────────────────────────────────────────────────────

class DialogState(BaseModel):
    """
    Per-conversation position in the script. Owned and stored by the host;
    read and written only by the engine.
    """
    thread: Optional[str] = None
    step_index: int = 0
    values: dict[str, Any] = {}
    options: dict[str, Any] = {}


# ──────────────────────────────────────────────────────────────
#  Turn results
# ──────────────────────────────────────────────────────────────

class TurnResult(BaseModel):
    """What a dialog entry point hands back to the host."""
    status: DialogTurnStatus
    result: Any = None


@dataclass
class Restart:
    """Resolve the step at (thread, index) within the current turn."""
    index: int
    thread: str
    reason: DialogReason = DialogReason.NEXT_CALLED
    result: Any = None


# ──────────────────────────────────────────────────────────────
#  Step context: per-invocation view of one line
# ──────────────────────────────────────────────────────────────

class StepContext:
    """
    Ephemeral view of the step being resolved.

    `thread` and `index` start at the position being resolved. Hooks redirect
    the conversation by moving them (see ConversationControl.goto_thread); the
    engine compares against the starting position after every hook call.
    """

    def __init__(
        self,
        dialog_id: str,
        index: int,
        thread: str,
        state: DialogState,
        reason: DialogReason,
        result: Any = None,
    ):
        self.dialog_id = dialog_id
        self.index = index
        self.thread = thread
        self.state = state
        self.reason = reason
        self.result = result
        self._origin = (index, thread)
        self._next_called = False

    @property
    def values(self) -> dict[str, Any]:
        return self.state.values

    @property
    def options(self) -> dict[str, Any]:
        return self.state.options

    @property
    def redirected(self) -> bool:
        return (self.index, self.thread) != self._origin

    def next(self, result: Any = None) -> Restart:
        """Advance to the following index. Single use."""
        if self._next_called:
            raise StepAlreadyAdvancedError(
                f"StepContext.next(): method already called for dialog and step "
                f"'{self.dialog_id}[{self.index}]'."
            )
        self._next_called = True
        return Restart(
            index=self.state.step_index + 1,
            thread=self.state.thread,
            reason=DialogReason.NEXT_CALLED,
            result=result,
        )

    def __repr__(self):
        return f"<StepContext {self.dialog_id} {self.thread}[{self.index}]>"
