"""
Script Store: named threads of scripted lines.

Threads are built once, before any conversation runs, and are treated as
read-only afterwards. The order of add_* calls defines execution order.

Lines may be given as:
  - a plain string                → message with a single text variant
  - a dict (e.g. from YAML)       → validated into Message/Question/Action line
  - an already-built line model   → stored as-is

Scripts can also be loaded from plain config:

    default:
      - text: "Hi"
      - text: "What's your name?"
        collect: {key: name}
      - text: "Hi {{vars.name}}"
"""
from __future__ import annotations

import structlog
from typing import Any, Callable, Optional, Union

from pydantic import TypeAdapter, ValidationError

from dialogs.errors import ScriptError, UnknownThreadError
from dialogs.models import BaseLine, CollectOption, Line, QuestionLine

logger = structlog.get_logger()

_LINE_ADAPTER = TypeAdapter(Line)
_BODY_FIELDS = ("text", "quick_replies", "attachments", "channel_data")

Handlers = Union[None, Callable[..., Any], list[Union[dict[str, Any], CollectOption]]]


def parse_line(message: Any) -> Line:
    """Validate a raw line into one of the Line variants."""
    if isinstance(message, BaseLine):
        return message
    if isinstance(message, str):
        message = {"text": [message]}
    data = dict(message)

    if "kind" not in data:
        if "collect" in data:
            data["kind"] = "question"
        elif data.get("action") and not any(data.get(f) for f in _BODY_FIELDS):
            data["kind"] = "action"
        else:
            data["kind"] = "message"

    try:
        return _LINE_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise ScriptError(f"Invalid script line: {exc}") from exc


def normalize_options(handlers: Handlers) -> list[CollectOption]:
    """A bare callable becomes the single default option."""
    if handlers is None:
        return []
    if callable(handlers):
        return [CollectOption(default=True, handler=handlers)]
    options = []
    for raw in handlers:
        if isinstance(raw, CollectOption):
            options.append(raw)
            continue
        try:
            options.append(CollectOption(**raw))
        except ValidationError as exc:
            raise ScriptError(f"Invalid collect option: {exc}") from exc
    return options


class Script:
    """Mapping of thread name → ordered lines."""

    def __init__(self, default_thread: str = "default"):
        self.default_thread = default_thread
        self._threads: dict[str, list[Line]] = {}

    # ── Building ──────────────────────────────────────

    def add_line(self, message: Any, thread_name: Optional[str] = None) -> Line:
        thread_name = thread_name or self.default_thread
        line = parse_line(message)
        lines = self._threads.setdefault(thread_name, [])
        lines.append(line)
        logger.debug("script_line_added",
                     thread=thread_name, index=len(lines) - 1, kind=line.kind)
        return line

    def add_question(
        self,
        message: Any,
        handlers: Handlers = None,
        key: str = "",
        thread_name: Optional[str] = None,
        multiple: bool = False,
    ) -> QuestionLine:
        """Add a line that waits for a reply, captures it into `key` and branches."""
        if isinstance(message, BaseLine):
            body = message.model_dump(include=set(_BODY_FIELDS))
        elif isinstance(message, str):
            body = {"text": [message]}
        else:
            body = {k: v for k, v in dict(message).items() if k in _BODY_FIELDS}

        body["kind"] = "question"
        body["collect"] = {
            "key": key,
            "multiple": multiple,
            "options": normalize_options(handlers),
        }
        return self.add_line(body, thread_name)

    def say(self, message: Any) -> Line:
        return self.add_line(message, self.default_thread)

    def ask(self, message: Any, handlers: Handlers = None, key: str = "") -> QuestionLine:
        return self.add_question(message, handlers, key=key, thread_name=self.default_thread)

    @classmethod
    def from_config(cls, config: dict[str, list[Any]], default_thread: str = "default") -> "Script":
        """Build a script from plain data: {thread_name: [line, ...]}."""
        script = cls(default_thread=default_thread)
        script.load(config)
        return script

    def load(self, config: dict[str, list[Any]]):
        for thread_name, lines in config.items():
            for raw in lines or []:
                self.add_line(raw, thread_name)
        logger.info("script_loaded",
                     threads=list(config.keys()),
                     lines=sum(len(v or []) for v in config.values()))

    # ── Lookup ────────────────────────────────────────

    @property
    def threads(self) -> list[str]:
        return list(self._threads.keys())

    def has_thread(self, name: str) -> bool:
        return name in self._threads

    def thread(self, name: str) -> list[Line]:
        try:
            return self._threads[name]
        except KeyError:
            raise UnknownThreadError(name) from None

    def __contains__(self, name: str) -> bool:
        return self.has_thread(name)

    def __len__(self) -> int:
        return len(self._threads)
