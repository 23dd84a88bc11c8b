import logging
import threading
from typing import Dict, Optional

from nlu_studio.events import STATUSBAR_TOPIC, EventBus
from nlu_studio.server.models import TrainingStatus, TrainSession

logger = logging.getLogger(__name__)


class TrainSessionService:
    """Tracks live training sessions and broadcasts every change on the status bus.

    Sessions only move forward: once ``done``, ``canceled`` or ``errored`` a
    session ignores further updates until a new training replaces it.
    """

    def __init__(self, event_bus: Optional[EventBus] = None):
        self.event_bus = event_bus
        self._sessions: Dict[str, TrainSession] = {}
        self._lock = threading.Lock()

    def get_training_session(self, model_id: str) -> Optional[TrainSession]:
        with self._lock:
            session = self._sessions.get(model_id)
            return session.model_copy() if session else None

    def is_training(self, model_id: str) -> bool:
        session = self.get_training_session(model_id)
        return session is not None and not session.status.is_terminal

    def start_session(self, model_id: str, language: str) -> TrainSession:
        session = TrainSession(status=TrainingStatus.PENDING, progress=0.0, language=language)
        with self._lock:
            self._sessions[model_id] = session
        self._publish(model_id, session)
        return session.model_copy()

    def set_progress(self, model_id: str, progress: float) -> Optional[TrainSession]:
        return self._transition(model_id, TrainingStatus.TRAINING, progress=min(max(progress, 0.0), 1.0))

    def complete(self, model_id: str) -> Optional[TrainSession]:
        return self._transition(model_id, TrainingStatus.DONE, progress=1.0)

    def cancel(self, model_id: str) -> Optional[TrainSession]:
        return self._transition(model_id, TrainingStatus.CANCELED)

    def fail(self, model_id: str, error: str) -> Optional[TrainSession]:
        return self._transition(model_id, TrainingStatus.ERRORED, error=error)

    def _transition(self, model_id: str, status: TrainingStatus, **changes) -> Optional[TrainSession]:
        with self._lock:
            current = self._sessions.get(model_id)
            if current is None:
                logger.warning(f"No training session for model {model_id}, ignoring '{status.value}'")
                return None
            if current.status.is_terminal:
                logger.debug(f"Session {model_id} already {current.status.value}, ignoring '{status.value}'")
                return None
            session = current.model_copy(update={"status": status, **changes})
            self._sessions[model_id] = session

        self._publish(model_id, session)
        return session.model_copy()

    def _publish(self, model_id: str, session: TrainSession) -> None:
        if self.event_bus is None:
            return
        self.event_bus.emit(
            STATUSBAR_TOPIC,
            {"type": "nlu", "modelId": model_id, "trainSession": session.model_dump(mode="json")},
        )
