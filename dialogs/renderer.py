"""
Template Renderer: fills {{vars.KEY}} placeholders into lines.

Rendering is pure: the source line and the values map are never mutated,
every call returns fresh structures.
"""
from __future__ import annotations

import random
import re
from typing import Any, Optional

from dialogs.models import BaseLine, CardAction, OutgoingMessage
from utils.matching import get_nested_value

PLACEHOLDER = re.compile(r"\{\{([^}]+)\}\}")


class TemplateRenderer:

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def interpolate(self, template: str, values: dict[str, Any]) -> str:
        """Replace {{path}} placeholders; missing paths render empty."""
        if not template:
            return ""
        ctx = {"vars": values}

        def replacer(match):
            val = get_nested_value(ctx, match.group(1).strip())
            if val is None:
                return ""
            if isinstance(val, (list, tuple)):
                return ",".join(str(v) for v in val)
            return str(val)

        return PLACEHOLDER.sub(replacer, template)

    def render(self, tree: Any, values: dict[str, Any]) -> Any:
        """Depth-first copy of a JSON-like tree with every string leaf rendered."""
        if isinstance(tree, str):
            return self.interpolate(tree, values)
        if isinstance(tree, dict):
            return {k: self.render(v, values) for k, v in tree.items()}
        if isinstance(tree, (list, tuple)):
            return [self.render(v, values) for v in tree]
        return tree

    def pick_text(self, variants: list[str]) -> str:
        if not variants:
            return ""
        return self._rng.choice(variants)

    def make_outgoing(self, line: BaseLine, values: dict[str, Any]) -> OutgoingMessage:
        """Build the outgoing message for a line, choosing one text variant."""
        if line.quick_replies:
            text = line.text[0] if line.text else ""
            suggested = [
                CardAction(
                    title=self.interpolate(reply.title, values),
                    text=self.interpolate(reply.payload, values),
                    display_text=self.interpolate(reply.title, values),
                    value=self.interpolate(reply.payload, values),
                )
                for reply in line.quick_replies
            ]
        else:
            text = self.pick_text(line.text)
            suggested = []

        return OutgoingMessage(
            text=self.interpolate(text, values),
            suggested_actions=suggested,
            attachments=self.render(line.attachments, values),
            channel_data=self.render(line.channel_data, values),
        )
