"""
Dialog errors.

Scripting mistakes surface as ScriptError (raised while the script is being
built) or as the runtime errors below. Hook and handler exceptions are never
wrapped; they propagate to the host's turn boundary as-is.
"""
from __future__ import annotations


class ScriptError(ValueError):
    """A script line or thread reference is invalid."""


class UnknownThreadError(ScriptError):
    def __init__(self, thread: str):
        super().__init__(f"Unknown thread '{thread}'")
        self.thread = thread


class StepAlreadyAdvancedError(RuntimeError):
    """StepContext.next() was called twice for the same step."""


class ScriptLoopError(RuntimeError):
    """A single turn ran more steps than the configured budget allows."""


class PromptError(RuntimeError):
    """Raised by a host when it cannot start the requested prompt."""

    def __init__(self, prompt_id: str, message: str = ""):
        super().__init__(message or f"Prompt '{prompt_id}' is not registered")
        self.prompt_id = prompt_id
