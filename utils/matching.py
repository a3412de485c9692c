"""
Shared matching helpers: used by the Script Store, Renderer and Dispatcher.

Collect options are tested against the raw reply text. Both option types
("string" and "regex") compile to a case-insensitive regex searched anywhere
in the reply, so anchors (^ $) must be written into the pattern itself.
"""
from __future__ import annotations

import re
from functools import lru_cache
from typing import Any, Iterable, Optional


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


def pattern_matches(pattern: str, text: str) -> bool:
    """True if the case-insensitive pattern matches anywhere in text."""
    return compile_pattern(pattern).search(text or "") is not None


def select_option(options: Iterable[Any], reply: str) -> Optional[Any]:
    """
    Pick the branch for a reply.

    Non-default options are tried in declaration order (first match wins).
    When none match, the first option flagged default is returned, or None.
    """
    default = None
    for option in options:
        if option.default:
            if default is None:
                default = option
            continue
        if pattern_matches(option.pattern, reply):
            return option
    return default


def get_nested_value(data: Any, field: str) -> Any:
    """Get a value from nested dict using dot notation. e.g. 'vars.name'"""
    current = data
    for part in field.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        else:
            return None
    return current
