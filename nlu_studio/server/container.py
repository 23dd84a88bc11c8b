"""Service wiring for the NLU server."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from nlu_studio.events import EventBus
from nlu_studio.server.config import Settings
from nlu_studio.server.engine import NLUEngine
from nlu_studio.server.model_service import ModelService
from nlu_studio.server.monitoring import RequestMonitor
from nlu_studio.server.train_service import TrainService
from nlu_studio.server.train_session_service import TrainSessionService


@dataclass(frozen=True)
class ServiceContainer:
    settings: Settings
    event_bus: EventBus
    engine: NLUEngine
    model_service: ModelService
    train_session_service: TrainSessionService
    train_service: TrainService
    monitor: RequestMonitor


def build_container(settings: Settings, event_bus: Optional[EventBus] = None) -> ServiceContainer:
    event_bus = event_bus or EventBus()
    engine = NLUEngine(settings)
    model_service = ModelService(settings.model_dir)
    model_service.init()
    train_session_service = TrainSessionService(event_bus)
    train_service = TrainService(engine, model_service, train_session_service)
    return ServiceContainer(
        settings=settings,
        event_bus=event_bus,
        engine=engine,
        model_service=model_service,
        train_session_service=train_session_service,
        train_service=train_service,
        monitor=RequestMonitor(),
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container
