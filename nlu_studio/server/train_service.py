import asyncio
import logging
import threading
from typing import Dict, List, Optional, Sequence

from nlu_studio.server.engine import Model, NLUEngine
from nlu_studio.server.exceptions import TrainingCanceledError
from nlu_studio.server.model_service import ModelService
from nlu_studio.server.models import EntityDefinition, IntentDefinition
from nlu_studio.server.train_session_service import TrainSessionService

logger = logging.getLogger(__name__)


class TrainService:
    """Runs trainings in the background and records their outcome."""

    def __init__(
        self,
        engine: NLUEngine,
        model_service: ModelService,
        session_service: TrainSessionService,
    ):
        self.engine = engine
        self.model_service = model_service
        self.sessions = session_service
        self._tasks: Dict[str, asyncio.Task] = {}
        self._cancel_events: Dict[str, threading.Event] = {}
        self._passwords: Dict[str, List[str]] = {}

    def start_training(
        self,
        model_id: str,
        password: str,
        intents: Sequence[IntentDefinition],
        entities: Sequence[EntityDefinition],
        language: str,
        seed: int = 0,
    ) -> bool:
        """Schedule a training without waiting for it. Must be called from a running event loop.

        Returns False when the model is already being trained. The password is
        then queued so the running training also saves the model under it.
        """
        passwords = self._passwords.get(model_id)
        if passwords is not None:
            if password not in passwords:
                passwords.append(password)
            logger.info(f"Model {model_id} is already training, ignoring request")
            return False

        self.sessions.start_session(model_id, language)
        cancel_event = threading.Event()
        self._cancel_events[model_id] = cancel_event
        self._passwords[model_id] = [password]

        task = asyncio.create_task(
            self.train(model_id, password, intents, entities, language, seed, cancel_event),
            name=f"train-{model_id}",
        )
        self._tasks[model_id] = task

        def _forget(finished: asyncio.Task) -> None:
            if self._tasks.get(model_id) is finished:
                del self._tasks[model_id]

        task.add_done_callback(_forget)
        return True

    async def train(
        self,
        model_id: str,
        password: str,
        intents: Sequence[IntentDefinition],
        entities: Sequence[EntityDefinition],
        language: str,
        seed: int = 0,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[Model]:
        """Train, persist and update the session. Failures end up in the session, never raised."""
        cancel_event = cancel_event or threading.Event()
        passwords = self._passwords.get(model_id) or [password]

        def report_progress(progress: float) -> None:
            if cancel_event.is_set():
                raise TrainingCanceledError(model_id)
            self.sessions.set_progress(model_id, progress)

        logger.info(f"Training started for model {model_id} ({language})")
        try:
            model = await asyncio.to_thread(
                self.engine.train,
                model_id,
                intents,
                entities,
                language,
                seed=seed,
                progress_callback=report_progress,
            )
            if cancel_event.is_set():
                raise TrainingCanceledError(model_id)
            # Passwords may still be queued while earlier saves run.
            saved = 0
            while saved < len(passwords):
                await asyncio.to_thread(self.model_service.save_model, model, passwords[saved])
                saved += 1
        except TrainingCanceledError:
            logger.info(f"Training of model {model_id} canceled")
            self.sessions.cancel(model_id)
            return None
        except Exception as e:
            logger.error(f"Training of model {model_id} failed: {e}", exc_info=True)
            self.sessions.fail(model_id, str(e))
            return None
        finally:
            if self._cancel_events.get(model_id) is cancel_event:
                del self._cancel_events[model_id]
            if self._passwords.get(model_id) is passwords:
                del self._passwords[model_id]

        self.sessions.complete(model_id)
        logger.info(f"Training of model {model_id} done")
        return model

    def cancel(self, model_id: str) -> bool:
        """Request cancellation; the session turns ``canceled`` at the next progress report."""
        cancel_event = self._cancel_events.get(model_id)
        if cancel_event is None:
            return False
        logger.info(f"Cancel requested for model {model_id}")
        cancel_event.set()
        return True

    def is_training(self, model_id: str) -> bool:
        return model_id in self._tasks

    async def wait(self, model_id: str) -> Optional[Model]:
        task = self._tasks.get(model_id)
        if task is None:
            return None
        return await task

    async def shutdown(self) -> None:
        """Cancel every live training and wait for the workers to stop."""
        for cancel_event in list(self._cancel_events.values()):
            cancel_event.set()
        tasks = list(self._tasks.values())
        if tasks:
            logger.info(f"Waiting for {len(tasks)} training(s) to stop...")
            await asyncio.gather(*tasks, return_exceptions=True)
