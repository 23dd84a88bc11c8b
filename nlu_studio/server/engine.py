import hashlib
import json
import logging
import re
import threading
import warnings
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.exceptions import ConvergenceWarning
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.neural_network import MLPClassifier

from nlu_studio.server.config import Settings
from nlu_studio.server.exceptions import InvalidInputError, PredictionError, TrainingError
from nlu_studio.server.models import (
    EntityDefinition,
    EntityType,
    ExtractedEntity,
    IntentDefinition,
    PredictedIntent,
    Prediction,
)

logger = logging.getLogger(__name__)

# Bumped whenever training changes in a way that invalidates persisted models.
ENGINE_SPEC_VERSION = "1.0.0"

SLOT_MARKUP_RE = re.compile(r"\[([^\[\]]+?)\]\(([\w-]+)\)")

ProgressCallback = Callable[[float], None]


def strip_slot_markup(utterance: str) -> str:
    """Replace ``[Paris](destination)`` by ``Paris``."""
    return SLOT_MARKUP_RE.sub(r"\1", utterance)


@dataclass
class Model:
    """A trained NLU artifact."""
    model_id: str
    hash: str
    language_code: str
    seed: int
    started_at: datetime
    finished_at: datetime
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class _LoadedModel:
    model: Model
    references: int = 1


class NLUEngine:
    """
    Intent classification and entity extraction.

    Intents are classified with character n-gram TF-IDF features fed to an MLP;
    list entities are matched on their synonyms and pattern entities with regexes.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._loaded: Dict[str, _LoadedModel] = {}
        self._lock = threading.Lock()

    # --- Hashing ---

    def compute_model_hash(
        self,
        intents: Sequence[IntentDefinition],
        entities: Sequence[EntityDefinition],
        language: str,
    ) -> str:
        """Deterministic content hash of the training inputs."""
        payload = {
            "specVersion": ENGINE_SPEC_VERSION,
            "language": language,
            "intents": [intent.model_dump(mode="json") for intent in intents],
            "entities": [entity.model_dump(mode="json") for entity in entities],
        }
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    # --- Training ---

    def train(
        self,
        model_id: str,
        intents: Sequence[IntentDefinition],
        entities: Sequence[EntityDefinition],
        language: str,
        seed: int = 0,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Model:
        """Train a model. ``progress_callback`` may raise to abort training."""
        report = progress_callback or (lambda progress: None)
        started_at = datetime.now(timezone.utc)
        report(0.0)

        self._validate_entities(entities)
        df = self._build_dataset(intents)
        if df.empty:
            raise TrainingError("No valid utterance to train on.")
        report(0.2)

        labels = sorted(df["intent"].unique().tolist())
        vectorizer = TfidfVectorizer(analyzer="char_wb", ngram_range=(2, 4), lowercase=True)
        features = vectorizer.fit_transform(df["utterance"])
        report(0.5)

        classifier = None
        if len(labels) > 1:
            classifier = MLPClassifier(
                hidden_layer_sizes=tuple(self.settings.hidden_layers),
                max_iter=self.settings.max_iter,
                random_state=seed,
            )
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", category=ConvergenceWarning)
                classifier.fit(features, df["intent"])
        report(0.9)

        model = Model(
            model_id=model_id,
            hash=self.compute_model_hash(intents, entities, language),
            language_code=language,
            seed=seed,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            data={
                "vectorizer": vectorizer,
                "classifier": classifier,
                "labels": labels,
                "intents": [intent.model_dump(mode="json") for intent in intents],
                "entities": [entity.model_dump(mode="json") for entity in entities],
                "samples": len(df),
            },
        )
        report(1.0)
        logger.info(f"Trained model {model_id} on {len(df)} utterances and {len(labels)} intents")
        return model

    def _build_dataset(self, intents: Sequence[IntentDefinition]) -> pd.DataFrame:
        """Flatten intents to one row per cleaned utterance."""
        rows = [
            {"utterance": strip_slot_markup(utterance), "intent": intent.name}
            for intent in intents
            for utterance in intent.utterances
        ]
        df = pd.DataFrame(rows, columns=["utterance", "intent"])
        if df.empty:
            return df

        df["utterance"] = df["utterance"].astype(str).str.strip()
        df = df[df["utterance"] != ""]
        df = df.drop_duplicates(subset=["utterance", "intent"], keep="last")
        return df.reset_index(drop=True)

    def _validate_entities(self, entities: Sequence[EntityDefinition]) -> None:
        for entity in entities:
            if entity.type == EntityType.PATTERN:
                if not entity.pattern:
                    raise InvalidInputError(f"Pattern entity '{entity.name}' has no pattern.")
                try:
                    re.compile(entity.pattern)
                except re.error as e:
                    raise InvalidInputError(f"Pattern entity '{entity.name}' has an invalid pattern: {e}")

    # --- Loading ---

    def load_model(self, model: Model) -> None:
        with self._lock:
            loaded = self._loaded.get(model.model_id)
            if loaded is None:
                self._loaded[model.model_id] = _LoadedModel(model=model)
            else:
                loaded.references += 1

    def unload_model(self, model_id: str) -> bool:
        """Release one reference; the model is dropped once nobody uses it."""
        with self._lock:
            loaded = self._loaded.get(model_id)
            if loaded is None:
                return False
            loaded.references -= 1
            if loaded.references <= 0:
                del self._loaded[model_id]
            return True

    def is_loaded(self, model_id: str) -> bool:
        with self._lock:
            return model_id in self._loaded

    # --- Inference ---

    def predict(self, text: str, model_id: str) -> Prediction:
        if not text or not text.strip():
            raise InvalidInputError("Sentence cannot be empty.")

        with self._lock:
            loaded = self._loaded.get(model_id)
        if loaded is None:
            raise PredictionError(f"Model {model_id} is not loaded.")

        data = loaded.model.data
        intents = self._classify(text, data)
        entities = self._extract_entities(text, data["entities"])
        top = intents[0]
        slots = self._fill_slots(top.name, data["intents"], entities)
        return Prediction(intent=top, intents=intents, entities=entities, slots=slots)

    def _classify(self, text: str, data: Dict[str, Any]) -> List[PredictedIntent]:
        classifier: Optional[MLPClassifier] = data["classifier"]
        if classifier is None:
            return [PredictedIntent(name=data["labels"][0], confidence=1.0)]

        features = data["vectorizer"].transform([text])
        probabilities = classifier.predict_proba(features)[0]
        ranking = np.argsort(probabilities)[::-1]
        return [
            PredictedIntent(name=str(classifier.classes_[idx]), confidence=round(float(probabilities[idx]), 4))
            for idx in ranking
        ]

    def _extract_entities(self, text: str, entities: List[Dict[str, Any]]) -> List[ExtractedEntity]:
        extracted: List[ExtractedEntity] = []
        for entity in entities:
            flags = 0 if entity["case_sensitive"] else re.IGNORECASE
            if entity["type"] == EntityType.PATTERN.value:
                for match in re.finditer(entity["pattern"], text, flags):
                    if not match.group(0):
                        continue
                    extracted.append(self._make_entity(entity, match.group(0), match))
                continue

            for value in entity["values"]:
                for candidate in self._synonyms(value):
                    pattern = r"(?<!\w)" + re.escape(candidate) + r"(?!\w)"
                    for match in re.finditer(pattern, text, flags):
                        extracted.append(self._make_entity(entity, value["name"], match))

        return self._remove_overlaps(extracted)

    @staticmethod
    def _synonyms(value: Dict[str, Any]) -> List[str]:
        candidates = [value["name"], *value.get("synonyms", [])]
        # Longest first so "new york city" wins over "new york"
        return sorted({c for c in candidates if c.strip()}, key=len, reverse=True)

    @staticmethod
    def _make_entity(entity: Dict[str, Any], value: str, match: "re.Match[str]") -> ExtractedEntity:
        return ExtractedEntity(
            name=entity["name"],
            type=EntityType(entity["type"]),
            value=value,
            source=match.group(0),
            start=match.start(),
            end=match.end(),
        )

    @staticmethod
    def _remove_overlaps(entities: List[ExtractedEntity]) -> List[ExtractedEntity]:
        kept: List[ExtractedEntity] = []
        taken: List[Tuple[str, int, int]] = []
        for entity in sorted(entities, key=lambda e: (e.start, -(e.end - e.start))):
            if any(name == entity.name and entity.start < end and start < entity.end for name, start, end in taken):
                continue
            kept.append(entity)
            taken.append((entity.name, entity.start, entity.end))
        return kept

    @staticmethod
    def _fill_slots(
        intent_name: str,
        intents: List[Dict[str, Any]],
        entities: List[ExtractedEntity],
    ) -> Dict[str, ExtractedEntity]:
        definition = next((i for i in intents if i["name"] == intent_name), None)
        if definition is None:
            return {}

        slots: Dict[str, ExtractedEntity] = {}
        for slot in definition["slots"]:
            match = next((e for e in entities if e.name == slot["entity"]), None)
            if match is not None:
                slots[slot["name"]] = match
        return slots
