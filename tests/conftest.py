import copy

import httpx
import pytest

from nlu_studio.events import EventBus
from nlu_studio.server.config import Settings
from nlu_studio.server.container import build_container
from nlu_studio.server.main import create_application

TRAIN_PAYLOAD = {
    "language": "en",
    "topics": {
        "travel": [
            {
                "name": "book_flight",
                "utterances": [
                    "book a flight to [Paris](city)",
                    "I want to fly to [London](city)",
                    "get me a plane ticket",
                    "reserve a flight for me",
                    "flight to [Berlin](city) please",
                    "I need a flight",
                ],
                "slots": [{"name": "destination", "entity": "city"}],
            },
        ],
        "smalltalk": [
            {
                "name": "greeting",
                "utterances": ["hello", "hi there", "good morning", "hey", "hello bot", "greetings"],
            },
        ],
    },
    "entities": [
        {
            "name": "city",
            "type": "list",
            "values": [
                {"name": "Paris", "synonyms": ["city of light"]},
                {"name": "London"},
                {"name": "Berlin"},
            ],
        },
        {"name": "number", "type": "pattern", "pattern": "\\d+"},
    ],
}


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def train_payload():
    return copy.deepcopy(TRAIN_PAYLOAD)


@pytest.fixture
def settings(tmp_path):
    return Settings(model_dir=str(tmp_path / "models"), hidden_layers=(32,), max_iter=300)


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def container(settings, event_bus):
    return build_container(settings, event_bus)


@pytest.fixture
def app(container):
    return create_application(container=container)


@pytest.fixture
def async_client_factory():
    def _factory(app, **kwargs):
        transport = httpx.ASGITransport(app=app)
        return httpx.AsyncClient(transport=transport, base_url="http://testserver", **kwargs)

    return _factory
