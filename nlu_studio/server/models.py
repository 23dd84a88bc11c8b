from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

# --- Enums ---

class TrainingStatus(str, Enum):
    PENDING = "training-pending"
    TRAINING = "training"
    DONE = "done"
    CANCELED = "canceled"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in (TrainingStatus.DONE, TrainingStatus.CANCELED, TrainingStatus.ERRORED)


class EntityType(str, Enum):
    LIST = "list"
    PATTERN = "pattern"

# --- Training definitions ---

class SlotDefinition(BaseModel):
    name: str = Field(..., min_length=1)
    entity: str = Field(..., min_length=1, description="Name of the entity that fills the slot.")


class IntentDefinition(BaseModel):
    """An intent with its example utterances; slots are marked ``[text](slot)``."""
    name: str = Field(..., min_length=1)
    contexts: List[str] = Field(default_factory=lambda: ["global"])
    utterances: List[str] = Field(..., min_length=1)
    slots: List[SlotDefinition] = Field(default_factory=list)


class ListEntityValue(BaseModel):
    name: str = Field(..., min_length=1)
    synonyms: List[str] = Field(default_factory=list)


class EntityDefinition(BaseModel):
    name: str = Field(..., min_length=1)
    type: EntityType = EntityType.LIST
    values: List[ListEntityValue] = Field(default_factory=list)
    pattern: Optional[str] = Field(None, description="Regular expression for pattern entities.")
    case_sensitive: bool = False

# --- Request Models ---

class TrainInput(BaseModel):
    """Request body of ``POST /train``. Unknown fields are dropped."""
    model_config = ConfigDict(extra="ignore")

    topics: Dict[str, List[IntentDefinition]] = Field(..., description="Intents grouped by topic.")
    entities: List[EntityDefinition] = Field(default_factory=list)
    language: str = Field(..., min_length=2, max_length=5)
    password: str = Field("", description="Optional password protecting the model.")
    seed: int = Field(0, ge=0)

    def intents(self) -> List[IntentDefinition]:
        return [intent for topic in self.topics.values() for intent in topic]


class PasswordBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    password: str = ""


class PredictRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sentence: str = Field(..., min_length=1)
    password: str = ""

# --- Domain Models ---

class TrainSession(BaseModel):
    """Progress record of a training run."""
    status: TrainingStatus = TrainingStatus.PENDING
    progress: float = Field(0.0, ge=0.0, le=1.0)
    language: str
    error: Optional[str] = None


class PredictedIntent(BaseModel):
    name: str
    confidence: float


class ExtractedEntity(BaseModel):
    name: str
    type: EntityType
    value: str
    source: str
    start: int
    end: int
    confidence: float = 1.0


class Prediction(BaseModel):
    intent: PredictedIntent
    intents: List[PredictedIntent]
    entities: List[ExtractedEntity] = Field(default_factory=list)
    slots: Dict[str, ExtractedEntity] = Field(default_factory=dict)

# --- Response Models ---

class InfoResponse(BaseModel):
    success: bool = True
    version: str


class TrainResponse(BaseModel):
    success: bool = True
    model_id: str = Field(..., serialization_alias="modelId")

    model_config = ConfigDict(protected_namespaces=())


class TrainSessionResponse(BaseModel):
    success: bool = True
    session: TrainSession


class PredictResponse(BaseModel):
    success: bool = True
    prediction: Prediction


class ModelsResponse(BaseModel):
    success: bool = True
    models: List[str]


class ErrorResponse(BaseModel):
    """Standardized error envelope."""
    success: bool = False
    error: str = Field(..., description="A human-readable error message.")
    error_code: str = Field("INTERNAL_SERVER_ERROR", description="Error type or code.")
    detail: Optional[Any] = Field(None, description="Additional error details.")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
