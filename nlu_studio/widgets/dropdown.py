"""Single-select dropdown with optional confirmation before a change is committed."""

import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Union


@dataclass(frozen=True)
class Option:
    label: str
    value: Any


@dataclass
class ConfirmChange:
    message: str
    accept_label: Optional[str] = None
    # Called with True when the dialog opens and False once it closes.
    callback: Optional[Callable[[bool], None]] = None


ConfirmDialog = Callable[[str, Optional[str]], Awaitable[bool]]


def filter_option(query: str, option: Option) -> bool:
    return query.lower() in f"{option.label.lower()} {option.value}"


class Dropdown:
    def __init__(
        self,
        items: List[Option],
        on_change: Callable[[Option], Any],
        placeholder: str = "",
        default_item: Union[Option, str, None] = None,
        confirm_change: Optional[ConfirmChange] = None,
        confirm_dialog: Optional[ConfirmDialog] = None,
        filterable: bool = True,
    ):
        if confirm_change is not None and confirm_dialog is None:
            raise ValueError("confirm_dialog is required when confirm_change is set")

        self.items = items
        self.on_change = on_change
        self.placeholder = placeholder
        self.confirm_change = confirm_change
        self.confirm_dialog = confirm_dialog
        self.filterable = filterable
        self.active_item: Optional[Option] = None
        self.set_default_item(default_item)

    def set_default_item(self, default_item: Union[Option, str, None]) -> None:
        """A string is looked up by option value."""
        if isinstance(default_item, str):
            self.active_item = next((item for item in self.items if item.value == default_item), None)
        else:
            self.active_item = default_item

    @property
    def button_text(self) -> str:
        return self.active_item.label if self.active_item else self.placeholder

    @property
    def is_placeholder(self) -> bool:
        return self.active_item is None

    def visible_items(self, query: str = "") -> List[Option]:
        if not self.filterable or not query:
            return list(self.items)
        return [item for item in self.items if filter_option(query, item)]

    async def select(self, option: Option) -> bool:
        """Returns True when ``on_change`` was called."""
        if self.confirm_change is None:
            await self._update_selected_option(option)
            return True

        confirm = self.confirm_change
        if confirm.callback:
            confirm.callback(True)
        accepted = await self.confirm_dialog(confirm.message, confirm.accept_label)
        if confirm.callback:
            confirm.callback(False)

        if accepted:
            await self._update_selected_option(option)
        return bool(accepted)

    async def _update_selected_option(self, option: Option) -> None:
        result = self.on_change(option)
        if inspect.isawaitable(result):
            await result
