"""
Scripted Dialog System.

Scripts are named threads of lines: messages, questions and bare actions.
A ScriptedDialog walks the script one user turn at a time, capturing
answers into values, branching on them and running lifecycle hooks:

  - Script Store        (dialogs.script)    threads of validated lines
  - Template Renderer   (dialogs.renderer)  {{vars.KEY}} substitution
  - Hook Registry       (dialogs.hooks)     before / after / on_change
  - Action Dispatcher   (dialogs.actions)   next, complete, stop, jump, ...
  - Step Engine         (dialogs.engine)    the per-turn state machine
"""
from dialogs.models import (
    Line, MessageLine, QuestionLine, ActionLine,
    CollectSpec, CollectOption, OptionType, ExecuteSpec, QuickReply,
    DialogState, DialogReason, DialogTurnStatus, EndStatus,
    OutgoingMessage, CardAction, StepContext, TurnResult, Restart,
)
from dialogs.errors import (
    ScriptError, UnknownThreadError, StepAlreadyAdvancedError,
    ScriptLoopError, PromptError,
)
from dialogs.script import Script, parse_line
from dialogs.renderer import TemplateRenderer
from dialogs.hooks import HookRegistry
from dialogs.control import ConversationControl
from dialogs.actions import ActionDispatcher
from dialogs.engine import ScriptedDialog
