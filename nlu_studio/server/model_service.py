import hashlib
import logging
import os
import re
from typing import List, Optional

import joblib

from nlu_studio.server.engine import Model

logger = logging.getLogger(__name__)

MODEL_EXTENSION = ".model"
MODEL_ID_RE = re.compile(r"^[\w-]+(\.[\w-]+)*$")


class ModelService:
    """Persists trained models as joblib files under ``model_dir``.

    A model file is named ``<modelId>.<passwordHash>.model`` so a model can
    only be found again with the password it was saved with.
    """

    def __init__(self, model_dir: str):
        self.model_dir = model_dir

    def init(self) -> None:
        os.makedirs(self.model_dir, exist_ok=True)
        logger.info(f"Model directory ready at {os.path.abspath(self.model_dir)}")

    def make_model_id(self, model_hash: str, language: str, seed: int) -> str:
        return f"{model_hash[:16]}.{language}.{seed}"

    def save_model(self, model: Model, password: str = "") -> str:
        path = self._model_path(model.model_id, password)
        tmp_path = f"{path}.tmp"
        joblib.dump(model, tmp_path)
        os.replace(tmp_path, path)
        logger.info(f"Saved model {model.model_id} to {path}")
        return path

    def get_model(self, model_id: str, password: str = "") -> Optional[Model]:
        if not MODEL_ID_RE.match(model_id):
            return None
        path = self._model_path(model_id, password)
        if not os.path.exists(path):
            return None
        return joblib.load(path)

    def has_model(self, model_id: str, password: str = "") -> bool:
        return MODEL_ID_RE.match(model_id) is not None and os.path.exists(self._model_path(model_id, password))

    def list_models(self) -> List[str]:
        if not os.path.isdir(self.model_dir):
            return []
        model_ids = {
            filename[: -len(MODEL_EXTENSION)].rsplit(".", 1)[0]
            for filename in os.listdir(self.model_dir)
            if filename.endswith(MODEL_EXTENSION)
        }
        return sorted(model_ids)

    def _model_path(self, model_id: str, password: str) -> str:
        password_hash = hashlib.sha256(password.encode("utf-8")).hexdigest()[:16]
        return os.path.join(self.model_dir, f"{model_id}.{password_hash}{MODEL_EXTENSION}")
