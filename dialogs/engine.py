"""
Scripted Dialog Engine: runs a script one user turn at a time.

The host calls begin_dialog() once, then continue_dialog() on every inbound
activity. Each call walks forward from the persisted position:

  Active(thread, index)
    → capture the reply into values if the previous line was a question
    → run on_change hooks, evaluate the question's options, dispatch the winner
    → if this line is a question: prompt and stop (Waiting)
    → else send the line, dispatch its trailing action, advance and repeat
  end of thread → Complete, after hooks run once

Plain message lines never consume a user turn: every line up to the next
question (or terminal action) is sent within the same invocation.

Hooks and handlers redirect the conversation by moving the step (goto_thread).
After each of them the engine checks whether the step moved and, if so,
restarts resolution at the new position before anything else is sent.

Usage:
    convo = ScriptedDialog("onboarding", prompt_id="onboarding_prompt")
    convo.say("Hi")
    convo.ask("What's your name?", key="name")
    convo.say("Hi {{vars.name}}")
    convo.after(save_profile)

    await convo.begin_dialog(turn)           # "Hi", "What's your name?"
    await convo.continue_dialog(turn)        # "Hi Ada", complete
"""
from __future__ import annotations

import random
import structlog
from typing import TYPE_CHECKING, Any, Optional

from config.settings import DialogConfig, Settings, get_settings
from dialogs.actions import ActionDispatcher
from dialogs.control import ConversationControl
from dialogs.errors import PromptError, ScriptError, ScriptLoopError
from dialogs.hooks import HookHandler, HookRegistry
from dialogs.models import (
    DialogReason, DialogTurnStatus, Line, OutgoingMessage, QuestionLine,
    Restart, StepContext, TurnResult,
)
from dialogs.renderer import TemplateRenderer
from dialogs.script import Handlers, Script
from utils.matching import select_option

if TYPE_CHECKING:
    from host.base import DialogTurn

logger = structlog.get_logger()


class ScriptedDialog:
    """
    A dialog driven by a declarative script.

    The prompt used for questions is supplied by the host: it must be
    registered with the host under `prompt_id` before the dialog runs.
    """

    def __init__(
        self,
        dialog_id: str,
        prompt_id: str,
        config: Optional[DialogConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self.id = dialog_id
        self.prompt_id = prompt_id
        self._config = config or get_settings().dialogs
        if rng is None and self._config.random_seed is not None:
            rng = random.Random(self._config.random_seed)

        self.script = Script(default_thread=self._config.default_thread)
        self.hooks = HookRegistry()
        self.renderer = TemplateRenderer(rng)
        self.dispatcher = ActionDispatcher(self.script, self.end, self.replace_dialog)

    @classmethod
    def from_settings(
        cls,
        dialog_id: str,
        prompt_id: str,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
    ) -> "ScriptedDialog":
        """Build a dialog from the `scripts` section of the settings file."""
        settings = settings or get_settings()
        if dialog_id not in settings.scripts:
            raise ScriptError(f"No script configured for dialog '{dialog_id}'")
        dialog = cls(dialog_id, prompt_id, config=settings.dialogs, rng=rng)
        dialog.load_script(settings.scripts[dialog_id])
        return dialog

    # ══════════════════════════════════════════════════════════
    #  SCRIPT AUTHORING
    # ══════════════════════════════════════════════════════════

    def say(self, message: Any) -> Line:
        return self.script.say(message)

    def ask(self, message: Any, handlers: Handlers = None, key: str = "") -> QuestionLine:
        return self.script.ask(message, handlers, key=key)

    def add_message(self, message: Any, thread_name: Optional[str] = None) -> Line:
        return self.script.add_line(message, thread_name)

    def add_question(
        self,
        message: Any,
        handlers: Handlers = None,
        key: str = "",
        thread_name: Optional[str] = None,
        multiple: bool = False,
    ) -> QuestionLine:
        return self.script.add_question(message, handlers, key=key,
                                        thread_name=thread_name, multiple=multiple)

    def load_script(self, config: dict[str, list[Any]]):
        self.script.load(config)

    def before(self, thread_name: str, handler: HookHandler):
        self.hooks.before(thread_name, handler)

    def after(self, handler: HookHandler):
        self.hooks.after(handler)

    def on_change(self, key: str, handler: HookHandler):
        self.hooks.on_change(key, handler)

    # ══════════════════════════════════════════════════════════
    #  LIFECYCLE ENTRY POINTS
    # ══════════════════════════════════════════════════════════

    async def begin_dialog(self, turn: DialogTurn, options: Optional[dict[str, Any]] = None) -> TurnResult:
        """Start at index 0 of options["thread"] (or the default thread)."""
        state = turn.state
        state.options = dict(options or {})
        state.values = dict(state.options)

        thread = state.options.get("thread") or self._config.default_thread
        logger.info("dialog_begin", dialog_id=self.id, thread=thread)
        return await self.run_step(turn, 0, thread, DialogReason.BEGIN_CALLED)

    async def continue_dialog(self, turn: DialogTurn) -> TurnResult:
        """Feed an inbound activity. Non-message activities are ignored."""
        if turn.activity.type != "message":
            return TurnResult(status=DialogTurnStatus.WAITING)
        return await self.resume_dialog(turn, DialogReason.CONTINUE_CALLED, turn.activity.text)

    async def resume_dialog(self, turn: DialogTurn, reason: DialogReason, result: Any = None) -> TurnResult:
        state = turn.state
        return await self.run_step(turn, state.step_index + 1, state.thread, reason, result)

    async def replace_dialog(
        self, turn: DialogTurn, dialog_id: str, options: Optional[dict[str, Any]] = None,
    ) -> TurnResult:
        """Hand the conversation to another dialog, forwarding the captured values."""
        payload = {**turn.state.values, **(options or {})}
        return await turn.replace_dialog(dialog_id, payload)

    async def end_dialog(self, turn: DialogTurn, reason: DialogReason):
        """Called by the host when it ends this dialog from outside (e.g. cancel all)."""
        logger.debug("dialog_ended_by_host", dialog_id=self.id, reason=reason.value)

    async def end(self, turn: DialogTurn, value: Any = None) -> TurnResult:
        """Terminal sequence: snapshot values, end, then run after hooks once."""
        results = dict(turn.state.values)
        await turn.end_dialog(value)
        await self.hooks.run_after(turn, results)

        logger.info("dialog_complete",
                    dialog_id=self.id,
                    status=results.get("_status", "completed"))
        return TurnResult(status=DialogTurnStatus.COMPLETE, result=results)

    # ══════════════════════════════════════════════════════════
    #  STEP RESOLUTION
    # ══════════════════════════════════════════════════════════

    async def run_step(
        self,
        turn: DialogTurn,
        index: int,
        thread: str,
        reason: DialogReason,
        result: Any = None,
    ) -> TurnResult:
        """
        Resolve steps from (thread, index) until the turn waits or ends.

        Advancing to the next line is free. Every other move (jump, repeat,
        hook redirect) counts against max_steps_per_turn.
        """
        jumps = 0

        while True:
            lines = self.script.thread(thread)
            if index >= len(lines) and not _answers_final_question(lines, index, result):
                return await self.end(turn, result)

            state = turn.state
            state.step_index = index
            previous_thread = state.thread
            state.thread = thread

            step = StepContext(self.id, index, thread, state, reason, result)

            # entering a new thread
            if index == 0 and previous_thread != thread:
                await self.hooks.run_before(thread, turn, ConversationControl(step, self.script))
                if step.redirected:
                    jumps = self._count_jump(jumps, step.thread, step.index)
                    index, thread, reason, result = step.index, step.thread, DialogReason.NEXT_CALLED, None
                    continue

            outcome = await self._on_step(turn, step, lines)
            if isinstance(outcome, Restart):
                if (outcome.thread, outcome.index) != (thread, index + 1):
                    jumps = self._count_jump(jumps, outcome.thread, outcome.index)
                index, thread, reason, result = outcome.index, outcome.thread, outcome.reason, outcome.result
                continue
            return outcome

    def _count_jump(self, jumps: int, thread: str, index: int) -> int:
        jumps += 1
        if jumps > self._config.max_steps_per_turn:
            logger.error("step_budget_exhausted",
                         dialog_id=self.id, thread=thread, index=index,
                         budget=self._config.max_steps_per_turn)
            raise ScriptLoopError(
                f"Dialog '{self.id}' made more than {self._config.max_steps_per_turn} "
                f"jumps in one turn (last target {thread}[{index}])"
            )
        return jumps

    async def _on_step(self, turn: DialogTurn, step: StepContext, lines: list[Line]):
        line = lines[step.index] if step.index < len(lines) else None
        previous = lines[step.index - 1] if step.index >= 1 else None

        # The reply answers the previous line's question
        if step.result is not None and isinstance(previous, QuestionLine):
            collect = previous.collect

            if collect.key:
                self._capture(step, collect.key, collect.multiple)
                await self.hooks.run_on_change(
                    collect.key, step.result, turn, ConversationControl(step, self.script),
                )
                if step.redirected:
                    return Restart(index=step.index, thread=step.thread)

            if collect.options:
                path = select_option(collect.options, str(step.result))
                if path is not None:
                    logger.debug("branch_selected",
                                 dialog_id=self.id, thread=step.thread, index=step.index,
                                 action=path.action, default=path.default)
                    outcome = await self.dispatcher.dispatch(path, turn, step)
                    if outcome is not None:
                        return outcome

        if line is None:
            return await self.end(turn, step.result)

        if isinstance(line, QuestionLine):
            outgoing = self.renderer.make_outgoing(line, step.values)
            try:
                return await turn.prompt(self.prompt_id, outgoing)
            except PromptError as exc:
                logger.error("prompt_failed",
                             dialog_id=self.id, prompt_id=self.prompt_id,
                             thread=step.thread, index=step.index, error=str(exc))
                await turn.send_message(OutgoingMessage(text=f"Failed to start prompt {self.prompt_id}"))
                return step.next()

        if line.has_body:
            await turn.send_message(self.renderer.make_outgoing(line, step.values))

        if line.action:
            outcome = await self.dispatcher.dispatch(line, turn, step)
            if outcome is not None:
                return outcome

        return step.next()

    def _capture(self, step: StepContext, key: str, multiple: bool):
        existing = step.values.get(key)
        if multiple and existing:
            step.values[key] = self._config.multiple_separator.join([str(existing), str(step.result)])
        else:
            step.values[key] = step.result
        logger.debug("value_captured", dialog_id=self.id, key=key, multiple=multiple)


def _answers_final_question(lines: list[Line], index: int, result: Any) -> bool:
    """A reply to the thread's last line still needs capturing before the dialog ends."""
    return (
        result is not None
        and index == len(lines)
        and bool(lines)
        and isinstance(lines[-1], QuestionLine)
    )
