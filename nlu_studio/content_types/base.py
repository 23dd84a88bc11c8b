"""Shared pieces of the built-in content types."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

# Channels that ship their own templates for the built-in content types.
TEMPLATED_CHANNELS = ("web", "slack", "teams", "messenger", "telegram", "twilio")

typing_indicators = {
    "typing": {
        "type": "boolean",
        "title": "module.builtin.typingIndicator",
        "default": True,
    }
}


class UnsupportedActionError(ValueError):
    """Raised when a card carries an action the renderer cannot turn into a button."""

    def __init__(self, action: Any):
        self.action = action
        super().__init__(f'Webchat carousel does not support "{action}" action-buttons at the moment')


def renderer(data: Dict[str, Any], content_type: str) -> List[Dict[str, Any]]:
    """Generic payload left to the channel's own template for ``content_type``."""
    return [{**data, "type": content_type}]


@dataclass(frozen=True)
class ContentType:
    id: str
    group: str
    title: str
    json_schema: Dict[str, Any]
    render_element: Callable[[Dict[str, Any], str], List[Dict[str, Any]]]
    compute_preview_text: Callable[[Dict[str, Any]], Optional[str]]
    new_schema: Dict[str, Any] = field(default_factory=dict)
