"""Built-in message content types and their channel renderers."""

from nlu_studio.content_types.base import ContentType, UnsupportedActionError
from nlu_studio.content_types.carousel import carousel

CONTENT_TYPES = {content_type.id: content_type for content_type in (carousel,)}

__all__ = ["CONTENT_TYPES", "ContentType", "UnsupportedActionError", "carousel"]
