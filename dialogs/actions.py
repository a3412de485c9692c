"""
Action Dispatcher: turns a control-action token into a state transition.

dispatch() returns one of:
  None        fall through; the engine advances to the next index
  Restart     resolve another position within this same turn
  TurnResult  the turn is over (waiting, completed, replaced)

  | token          | effect                                             |
  |----------------|----------------------------------------------------|
  | next           | fall through                                       |
  | complete       | end, values["_status"] = "completed"               |
  | stop           | end, values["_status"] = "canceled"                |
  | timeout        | end, values["_status"] = "timeout"                 |
  | execute_script | replace this dialog with execute.script            |
  | repeat         | re-run the previous index                          |
  | wait           | stay on the question, wait for another reply       |
  | <thread name>  | jump to that thread at index 0                     |
"""
from __future__ import annotations

import structlog
from typing import Any, Awaitable, Callable, Optional, Union

from dialogs.control import ConversationControl
from dialogs.hooks import call_hook
from dialogs.models import (
    ACTION_COMPLETE, ACTION_EXECUTE_SCRIPT, ACTION_NEXT, ACTION_REPEAT,
    ACTION_STOP, ACTION_TIMEOUT, ACTION_WAIT,
    DialogTurnStatus, EndStatus, Restart, StepContext, TurnResult,
)
from dialogs.script import Script

logger = structlog.get_logger()

EndCallback = Callable[[Any, Any], Awaitable[TurnResult]]
ReplaceCallback = Callable[[Any, str, dict], Awaitable[TurnResult]]
Dispatch = Optional[Union[Restart, TurnResult]]

_END_ACTIONS = {
    ACTION_COMPLETE: EndStatus.COMPLETED,
    ACTION_STOP: EndStatus.CANCELED,
    ACTION_TIMEOUT: EndStatus.TIMEOUT,
}


class ActionDispatcher:

    def __init__(self, script: Script, end: EndCallback, replace: ReplaceCallback):
        """
        Args:
            script:  the dialog's script (thread lookup for jumps)
            end:     async fn(turn, value) → TurnResult, the engine's terminal sequence
            replace: async fn(turn, dialog_id, options) → TurnResult, hands over to another dialog
        """
        self._script = script
        self._end = end
        self._replace = replace

    async def dispatch(self, path: Any, turn, step: StepContext) -> Dispatch:
        """
        Dispatch a collect option or an action line.

        `path` needs `action` and `execute`; a `handler` attribute, when set,
        is invoked instead of the token.
        """
        handler = getattr(path, "handler", None)
        if handler is not None:
            return await self._run_handler(handler, turn, step)

        action = path.action

        if action == ACTION_NEXT:
            return None

        if action in _END_ACTIONS:
            step.values["_status"] = _END_ACTIONS[action].value
            logger.info("dialog_ended_by_action",
                        dialog_id=step.dialog_id, action=action,
                        thread=step.thread, index=step.index)
            return await self._end(turn, step.result)

        if action == ACTION_EXECUTE_SCRIPT:
            target = path.execute
            logger.info("dialog_execute_script",
                        dialog_id=step.dialog_id, script=target.script, thread=target.thread)
            return await self._replace(turn, target.script, {"thread": target.thread})

        if action == ACTION_REPEAT:
            return Restart(index=max(step.index - 1, 0), thread=step.thread)

        if action == ACTION_WAIT:
            step.state.step_index = step.index - 1
            logger.debug("dialog_waiting",
                         dialog_id=step.dialog_id, thread=step.thread,
                         step_index=step.state.step_index)
            return TurnResult(status=DialogTurnStatus.WAITING)

        if action and self._script.has_thread(action):
            step.thread = action
            step.index = 0
            return Restart(index=0, thread=action)

        logger.warning("unknown_action",
                       dialog_id=step.dialog_id, action=action,
                       thread=step.thread, index=step.index)
        return None

    async def _run_handler(self, handler, turn, step: StepContext) -> Dispatch:
        bot = await turn.spawn_session()
        convo = ConversationControl(step, self._script)
        await call_hook(handler, step.result, convo, bot)

        if step.redirected:
            return Restart(index=step.index, thread=step.thread)
        return None
