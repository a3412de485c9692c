"""Shared test fixtures for ConverseScript."""
import pytest
from typing import Any, Optional
from unittest.mock import MagicMock

from config.settings import DialogConfig
from dialogs.engine import ScriptedDialog
from dialogs.errors import PromptError
from dialogs.models import DialogState, DialogTurnStatus, OutgoingMessage, TurnResult
from host.base import Activity, DialogTurn
from host.memory import InMemoryDialogHost

PROMPT_ID = "test_prompt"


class RecordingTurn(DialogTurn):
    """A host turn double that records everything the engine asks of it."""

    def __init__(
        self,
        text: Optional[str] = None,
        state: Optional[DialogState] = None,
        activity_type: str = "message",
        prompts: tuple = (PROMPT_ID,),
    ):
        self._state = state or DialogState()
        self._activity = Activity(type=activity_type, text=text or "")
        self._prompts = set(prompts)
        self.sent: list[OutgoingMessage] = []
        self.prompted: list[OutgoingMessage] = []
        self.ended: list[Any] = []
        self.replaced: list[tuple[str, dict]] = []
        self.sessions = 0

    @property
    def state(self) -> DialogState:
        return self._state

    @property
    def activity(self) -> Activity:
        return self._activity

    async def send_message(self, message: OutgoingMessage) -> None:
        self.sent.append(message)

    async def prompt(self, prompt_id: str, message: OutgoingMessage) -> TurnResult:
        if prompt_id not in self._prompts:
            raise PromptError(prompt_id)
        self.prompted.append(message)
        return TurnResult(status=DialogTurnStatus.WAITING)

    async def end_dialog(self, value: Any = None) -> TurnResult:
        self.ended.append(value)
        return TurnResult(status=DialogTurnStatus.COMPLETE, result=value)

    async def replace_dialog(self, dialog_id: str, options: Optional[dict[str, Any]] = None) -> TurnResult:
        self.replaced.append((dialog_id, options or {}))
        return TurnResult(status=DialogTurnStatus.WAITING)

    async def spawn_session(self) -> Any:
        self.sessions += 1
        return MagicMock(name="bot")

    def reply(self, text: str) -> "RecordingTurn":
        """The next user turn of the same conversation."""
        return RecordingTurn(text=text, state=self._state, prompts=tuple(self._prompts))

    @property
    def sent_text(self) -> list[str]:
        return [m.text for m in self.sent]

    @property
    def prompted_text(self) -> list[str]:
        return [m.text for m in self.prompted]


@pytest.fixture
def dialog_config() -> DialogConfig:
    return DialogConfig()


@pytest.fixture
def make_dialog(dialog_config):
    def _make(dialog_id: str = "test_dialog", **kwargs) -> ScriptedDialog:
        kwargs.setdefault("config", dialog_config)
        return ScriptedDialog(dialog_id, prompt_id=PROMPT_ID, **kwargs)
    return _make


@pytest.fixture
def make_turn():
    def _make(**kwargs) -> RecordingTurn:
        return RecordingTurn(**kwargs)
    return _make


@pytest.fixture
def host() -> InMemoryDialogHost:
    return InMemoryDialogHost()


@pytest.fixture
def greeting_dialog(make_dialog) -> ScriptedDialog:
    """Hi → Name? → Hi {{vars.name}}"""
    dialog = make_dialog("greeting")
    dialog.load_script({
        "default": [
            {"text": ["Hi"]},
            {"collect": {"key": "name"}, "text": ["Name?"]},
            {"text": ["Hi {{vars.name}}"]},
        ],
    })
    return dialog


@pytest.fixture
def branching_dialog(make_dialog) -> ScriptedDialog:
    """Continue? yes → thread 'thanks', anything else → stop."""
    dialog = make_dialog("branching")
    dialog.load_script({
        "default": [
            {
                "text": "Continue?",
                "collect": {
                    "key": "answer",
                    "options": [
                        {"pattern": "^yes$", "action": "thanks"},
                        {"default": True, "action": "stop"},
                    ],
                },
            },
            {"text": "Still here"},
        ],
        "thanks": [
            {"text": "Thanks!"},
        ],
    })
    return dialog
