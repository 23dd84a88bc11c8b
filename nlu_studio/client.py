"""Async HTTP client for the NLU server."""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from nlu_studio.events import STATUSBAR_TOPIC, EventBus

logger = logging.getLogger(__name__)

TRAINING_STATUSES = ("training-pending", "training")


class NLUClientError(Exception):
    """Raised when the NLU server answers with an error envelope."""

    def __init__(self, message: str, status_code: Optional[int] = None, error_code: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)


class NLUClient:
    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Authorization": f"Bearer {auth_token}"} if auth_token else {}
        self._client = httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "NLUClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def info(self) -> Dict[str, Any]:
        return await self._request("GET", "/info")

    async def train(self, train_input: Dict[str, Any]) -> str:
        data = await self._request("POST", "/train", json=train_input)
        return data["modelId"]

    async def get_training(self, model_id: str, password: str = "") -> Optional[Dict[str, Any]]:
        """Training session of ``model_id``, or None when the server knows nothing about it."""
        try:
            data = await self._request("GET", f"/train/{model_id}", json={"password": password} if password else None)
        except NLUClientError as e:
            if e.status_code == 404:
                return None
            raise
        return data["session"]

    async def cancel_training(self, model_id: str) -> None:
        await self._request("POST", f"/train/{model_id}/cancel")

    async def predict(self, model_id: str, sentence: str, password: str = "") -> Dict[str, Any]:
        data = await self._request("POST", f"/predict/{model_id}", json={"sentence": sentence, "password": password})
        return data["prediction"]

    async def list_models(self) -> List[str]:
        data = await self._request("GET", "/models")
        return data["models"]

    async def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            logger.error(f"Request {method} {url} to NLU server failed: {e}")
            raise NLUClientError(f"NLU server unreachable: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.is_error or not data.get("success", False):
            message = data.get("error") or response.text or response.reason_phrase
            raise NLUClientError(message, status_code=response.status_code, error_code=data.get("error_code"))
        return data


class NLUApi:
    """Training controls for one bot, as consumed by the ``TrainNow`` widget.

    ``train_input`` returns the bot's current training payload; the model id
    returned by the last training is remembered for status and cancel calls.
    When an ``event_bus`` is given, each training is watched by polling the
    server and its session changes are emitted there as status events.
    """

    def __init__(
        self,
        client: NLUClient,
        train_input: Callable[[], Dict[str, Any]],
        event_bus: Optional[EventBus] = None,
        poll_interval: float = 1.0,
    ):
        self.client = client
        self.train_input = train_input
        self.event_bus = event_bus
        self.poll_interval = poll_interval
        self.model_id: Optional[str] = None
        self.watcher: Optional[asyncio.Task] = None

    def _password(self) -> str:
        return self.train_input().get("password", "")

    async def is_training(self) -> bool:
        if self.model_id is None:
            return False
        session = await self.client.get_training(self.model_id, self._password())
        return session is not None and session["status"] in TRAINING_STATUSES

    async def train(self) -> str:
        self.model_id = await self.client.train(self.train_input())
        if self.event_bus is not None:
            self.stop_watching()
            self.watcher = asyncio.create_task(self.watch(self.event_bus, self.poll_interval))
        return self.model_id

    async def cancel_training(self) -> None:
        if self.model_id is None:
            return
        await self.client.cancel_training(self.model_id)

    async def watch(self, event_bus: EventBus, interval: float = 1.0) -> Optional[Dict[str, Any]]:
        """Relay session changes of the current model to ``event_bus`` until training ends.

        Returns the last session seen, or None when the server lost track of the model.
        """
        model_id = self.model_id
        if model_id is None:
            return None

        last_session = None
        while True:
            session = await self.client.get_training(model_id, self._password())
            if session is None:
                logger.warning(f"Stopped watching {model_id}: the server has no training for it")
                return None
            if session != last_session:
                event_bus.emit(STATUSBAR_TOPIC, {"type": "nlu", "modelId": model_id, "trainSession": session})
                last_session = session
            if session["status"] not in TRAINING_STATUSES:
                return session
            await asyncio.sleep(interval)

    def stop_watching(self) -> None:
        if self.watcher is not None and not self.watcher.done():
            self.watcher.cancel()
        self.watcher = None
