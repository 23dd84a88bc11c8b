"""Carousel content type: a row of cards, each with its own action buttons."""

from typing import Any, Dict, List, Optional

from nlu_studio.content_types import base, card
from nlu_studio.content_types.base import ContentType, UnsupportedActionError
from nlu_studio.content_types.card import OpenUrlAction, PostbackAction, SaySomethingAction


def render_button(action, bot_url: str = "") -> Dict[str, Any]:
    action = card.parse_action(action)
    if isinstance(action, SaySomethingAction):
        return {"type": "say_something", "title": action.title, "text": action.text}
    if isinstance(action, OpenUrlAction):
        return {
            "type": "open_url",
            "title": action.title,
            "url": action.url.replace("BOT_URL", bot_url) if action.url else action.url,
        }
    if isinstance(action, PostbackAction):
        return {"type": "postback", "title": action.title, "payload": action.payload}
    raise UnsupportedActionError(getattr(action, "action", action))


def render(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Channel-agnostic carousel payload, preceded by a typing event when requested."""
    bot_url = data.get("BOT_URL") or ""
    events: List[Dict[str, Any]] = []

    if data.get("typing"):
        events.append({"type": "typing", "value": data["typing"]})

    elements = [
        {
            "title": item.get("title"),
            "picture": f"{bot_url}{item['image']}" if item.get("image") else None,
            "subtitle": item.get("subtitle"),
            "buttons": [render_button(action, bot_url) for action in item.get("actions") or []],
        }
        for item in data.get("items", [])
    ]

    return [
        *events,
        {
            "text": " ",
            "type": "carousel",
            "collectFeedback": data.get("collectFeedback"),
            "elements": elements,
        },
    ]


def render_element(data: Dict[str, Any], channel: str) -> List[Dict[str, Any]]:
    if channel in base.TEMPLATED_CHANNELS:
        return base.renderer(data, "carousel")
    return render(data)


def compute_preview_text(form_data: Dict[str, Any]) -> Optional[str]:
    items = form_data.get("items")
    if not items:
        return None
    return f"Carousel: ({len(items)}) {items[0].get('title')}"


_card_schema = dict(card.json_schema)
_card_definitions = _card_schema.pop("$defs", {})

carousel = ContentType(
    id="builtin_carousel",
    group="Built-in Messages",
    title="module.builtin.types.carousel.title",
    json_schema={
        "description": "module.builtin.types.carousel.description",
        "type": "object",
        "required": ["items"],
        "properties": {
            "items": {
                "type": "array",
                "title": "module.builtin.types.carousel.cards",
                "items": _card_schema,
            },
            **base.typing_indicators,
        },
        "$defs": _card_definitions,
    },
    new_schema={
        "displayedIn": ["qna", "sayNode"],
        "advancedSettings": [
            {
                "key": "markdown",
                "label": "module.builtin.useMarkdown",
                "defaultValue": True,
                "type": "checkbox",
                "moreInfo": {"label": "learnMore", "url": "https://daringfireball.net/projects/markdown/"},
            },
            {
                "key": "typing",
                "defaultValue": True,
                "type": "checkbox",
                "label": "module.builtin.typingIndicator",
            },
        ],
        "fields": [
            {
                "group": {
                    "addLabel": "module.builtin.types.card.add",
                    "minimum": 1,
                    "contextMenu": [{"type": "delete", "label": "module.builtin.types.card.delete"}],
                },
                "type": "group",
                "key": "items",
                "label": "fields::title",
                "fields": card.new_schema_fields,
            }
        ],
    },
    compute_preview_text=compute_preview_text,
    render_element=render_element,
)
