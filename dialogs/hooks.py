"""
Hook Registry: before / after / on_change lifecycle callbacks.

Handlers run sequentially in registration order and may be plain functions
or coroutines. A bot session is spawned only when there is at least one
handler to run.

Signatures:
  before(thread)   fn(convo, bot)
  on_change(key)   fn(value, convo, bot)
  after()          fn(results, bot)
"""
from __future__ import annotations

import inspect
import structlog
from typing import Any, Callable

from dialogs.control import ConversationControl

logger = structlog.get_logger()

HookHandler = Callable[..., Any]


async def call_hook(handler: HookHandler, *args: Any) -> Any:
    result = handler(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class HookRegistry:

    def __init__(self):
        self._before: dict[str, list[HookHandler]] = {}
        self._after: list[HookHandler] = []
        self._change: dict[str, list[HookHandler]] = {}

    # ── Registration ──────────────────────────────────

    def before(self, thread: str, handler: HookHandler):
        self._before.setdefault(thread, []).append(handler)

    def after(self, handler: HookHandler):
        self._after.append(handler)

    def on_change(self, key: str, handler: HookHandler):
        self._change.setdefault(key, []).append(handler)

    # ── Invocation ────────────────────────────────────

    async def run_before(self, thread: str, turn, convo: ConversationControl):
        handlers = self._before.get(thread)
        if not handlers:
            return
        logger.debug("hooks_before", thread=thread, count=len(handlers))
        bot = await turn.spawn_session()
        for handler in list(handlers):
            await call_hook(handler, convo, bot)

    async def run_on_change(self, key: str, value: Any, turn, convo: ConversationControl):
        handlers = self._change.get(key)
        if not handlers:
            return
        logger.debug("hooks_on_change", key=key, count=len(handlers))
        bot = await turn.spawn_session()
        for handler in list(handlers):
            await call_hook(handler, value, convo, bot)

    async def run_after(self, turn, results: dict[str, Any]):
        if not self._after:
            return
        logger.debug("hooks_after", count=len(self._after))
        bot = await turn.spawn_session()
        for handler in list(self._after):
            await call_hook(handler, results, bot)
