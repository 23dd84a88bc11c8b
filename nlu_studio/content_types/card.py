"""Card definition shared by the card and carousel content types."""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from nlu_studio.content_types.base import UnsupportedActionError


class SaySomethingAction(BaseModel):
    action: Literal["Say something"] = "Say something"
    title: str
    text: Optional[str] = None


class OpenUrlAction(BaseModel):
    action: Literal["Open URL"] = "Open URL"
    title: str
    url: Optional[str] = None


class PostbackAction(BaseModel):
    action: Literal["Postback"] = "Postback"
    title: str
    payload: Optional[Any] = None


Action = Annotated[
    Union[SaySomethingAction, OpenUrlAction, PostbackAction],
    Field(discriminator="action"),
]

ACTION_TYPES = {
    "Say something": SaySomethingAction,
    "Open URL": OpenUrlAction,
    "Postback": PostbackAction,
}


class Card(BaseModel):
    title: str = Field(..., title="module.builtin.types.card.title")
    image: Optional[str] = Field(None, title="module.builtin.types.card.image")
    subtitle: Optional[str] = Field(None, title="module.builtin.types.card.subtitle")
    actions: List[Action] = Field(default_factory=list, title="module.builtin.types.card.actionButtons")


def parse_action(raw: Union[Dict[str, Any], BaseModel]):
    """Turn a raw action into its typed variant, failing on unknown kinds."""
    if isinstance(raw, (SaySomethingAction, OpenUrlAction, PostbackAction)):
        return raw
    kind = raw.get("action") if isinstance(raw, dict) else getattr(raw, "action", None)
    action_type = ACTION_TYPES.get(kind)
    if action_type is None:
        raise UnsupportedActionError(kind)
    return action_type.model_validate(raw)


json_schema = Card.model_json_schema()

new_schema_fields = [
    {"type": "text", "key": "title", "label": "title"},
    {"type": "upload", "key": "image", "label": "image"},
    {"type": "text", "key": "subtitle", "label": "subtitle"},
    {
        "type": "group",
        "key": "actions",
        "label": "module.builtin.types.actionButton.title",
        "group": {
            "addLabel": "module.builtin.types.actionButton.addButton",
            "contextMenu": [{"type": "delete", "label": "module.builtin.types.actionButton.deleteButton"}],
        },
        "fields": [
            {"type": "text", "key": "title", "label": "module.builtin.types.actionButton.title"},
            {
                "type": "select",
                "key": "action",
                "label": "module.builtin.types.actionButton.action",
                "options": [{"value": kind, "label": kind} for kind in ACTION_TYPES],
            },
        ],
    },
]
