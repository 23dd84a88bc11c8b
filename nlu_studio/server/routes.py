import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query

from nlu_studio.server.container import ServiceContainer, get_container
from nlu_studio.server.exceptions import (
    ModelNotFoundError,
    NLUServerError,
    PredictionError,
    TrainingError,
    TrainingNotFoundError,
)
from nlu_studio.server.models import (
    InfoResponse,
    ModelsResponse,
    PasswordBody,
    PredictRequest,
    PredictResponse,
    TrainInput,
    TrainingStatus,
    TrainResponse,
    TrainSession,
    TrainSessionResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()

PREDICT_PATH_PREFIX = "/predict/"


@router.get(
    "/info",
    response_model=InfoResponse,
    summary="Server version",
)
async def get_info(container: ServiceContainer = Depends(get_container)):
    return InfoResponse(version=container.settings.app_version)


@router.post(
    "/train",
    response_model=TrainResponse,
    summary="Start training a model",
)
async def start_training(body: TrainInput, container: ServiceContainer = Depends(get_container)):
    """Return the model id right away; training continues in the background."""
    try:
        intents = body.intents()
        model_hash = container.engine.compute_model_hash(intents, body.entities, body.language)
        model_id = container.model_service.make_model_id(model_hash, body.language, body.seed)

        container.train_service.start_training(
            model_id, body.password, intents, body.entities, body.language, body.seed
        )
        return TrainResponse(model_id=model_id)

    except NLUServerError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error while starting training: {e}", exc_info=True)
        raise TrainingError(str(e)) from e


@router.get(
    "/train/{model_id}",
    response_model=TrainSessionResponse,
    summary="Training progress of a model",
)
async def get_training(
    model_id: str,
    password: Optional[str] = Query(None),
    body: Optional[PasswordBody] = Body(None),
    container: ServiceContainer = Depends(get_container),
):
    """Live session when training, otherwise a ``done`` session for a persisted model."""
    session = container.train_session_service.get_training_session(model_id)
    if session is None:
        model_password = (body.password if body else None) or password or ""
        model = await asyncio.to_thread(container.model_service.get_model, model_id, model_password)
        if model is None:
            raise TrainingNotFoundError(model_id)

        session = TrainSession(status=TrainingStatus.DONE, progress=1.0, language=model.language_code)

    return TrainSessionResponse(session=session)


@router.post(
    "/train/{model_id}/cancel",
    summary="Cancel a running training",
)
async def cancel_training(model_id: str, container: ServiceContainer = Depends(get_container)):
    if not container.train_service.cancel(model_id):
        raise TrainingNotFoundError(model_id, f"no training in progress for modelId: {model_id}")
    return {"success": True}


@router.post(
    f"{PREDICT_PATH_PREFIX}{{model_id}}",
    response_model=PredictResponse,
    summary="Predict intents and entities of a sentence",
)
async def predict(model_id: str, body: PredictRequest, container: ServiceContainer = Depends(get_container)):
    """Any failure past this point answers 404, whether the model is missing or inference broke."""
    engine = container.engine
    try:
        model = await asyncio.to_thread(container.model_service.get_model, model_id, body.password)
        if model is None:
            raise ModelNotFoundError(model_id)

        engine.load_model(model)
        try:
            prediction = await asyncio.to_thread(engine.predict, body.sentence, model.model_id)
        finally:
            engine.unload_model(model.model_id)

    except (ModelNotFoundError, PredictionError):
        raise
    except NLUServerError as e:
        raise PredictionError(e.message) from e
    except Exception as e:
        logger.error(f"Prediction failed for model {model_id}: {e}", exc_info=True)
        raise PredictionError(str(e)) from e

    return PredictResponse(prediction=prediction)


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List persisted models",
)
async def list_models(container: ServiceContainer = Depends(get_container)):
    models = await asyncio.to_thread(container.model_service.list_models)
    return ModelsResponse(models=models)
