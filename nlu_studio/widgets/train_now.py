"""Headless "Train now" control: tracks training state and exposes the button a view renders."""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

from nlu_studio.events import STATUSBAR_TOPIC, EventBus, Subscription

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("done", "canceled")


class TrainingApi(Protocol):
    async def is_training(self) -> bool: ...

    async def train(self) -> Any: ...

    async def cancel_training(self) -> Any: ...


@dataclass(frozen=True)
class ButtonState:
    label: str
    loading: bool
    disabled: bool
    on_click: Callable[[], Awaitable[None]]


def is_done_or_canceled(event: Dict[str, Any]) -> bool:
    session = event.get("trainSession") or {}
    return session.get("status") in TERMINAL_STATUSES


class TrainNow:
    def __init__(self, api: TrainingApi, event_bus: EventBus, auto_train: bool = False):
        self.api = api
        self.event_bus = event_bus
        self.auto_train = auto_train
        self.loading = True
        self.training = False
        self.cancelling = False
        self._subscription: Optional[Subscription] = None

    @property
    def mounted(self) -> bool:
        return self._subscription is not None and self._subscription.active

    async def mount(self) -> None:
        """Subscribe to status events, then fetch the current training state."""
        if self._subscription is None:
            self._subscription = self.event_bus.on(STATUSBAR_TOPIC, self._on_status_event)
        await self.fetch_is_training()

    def unmount(self) -> None:
        if self._subscription is not None:
            self._subscription.release()
            self._subscription = None

    async def fetch_is_training(self) -> None:
        self.loading = True
        self.training = await self.api.is_training()
        self.loading = False

    async def train(self) -> None:
        self.training = True
        await self.api.train()

    async def cancel_training(self) -> None:
        await self.api.cancel_training()
        # The canceled event may already have arrived while awaiting.
        if self.training:
            self.cancelling = True

    def _on_status_event(self, event: Dict[str, Any]) -> None:
        if event.get("type") == "nlu" and is_done_or_canceled(event):
            logger.debug(f"Training ended with status {event['trainSession']['status']}")
            self.training = False
            self.cancelling = False

    @property
    def button(self) -> ButtonState:
        if self.training:
            return ButtonState(
                label="module.nlu.cancelTraining",
                loading=self.loading,
                disabled=self.cancelling,
                on_click=self.cancel_training,
            )
        return ButtonState(
            label="module.nlu.retrainAll" if self.auto_train else "module.nlu.trainNow",
            loading=self.loading,
            disabled=False,
            on_click=self.train,
        )
