from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class PredictionLabel(str, Enum):
    POSITIVE = "Cancer"
    NEGATIVE = "Non-cancer"


class PredictionResult(BaseModel):
    """Outcome of a single successful prediction, immutable once built"""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str  # UUID
    label: PredictionLabel = Field(serialization_alias="result")
    suggestion: str
    created_at: str = Field(serialization_alias="createdAt")  # ISO-8601 UTC


class PredictionResponse(BaseModel):
    status: Literal["success"] = "success"
    message: str = "Model is predicted successfully"
    data: PredictionResult


class FailResponse(BaseModel):
    status: Literal["fail"] = "fail"
    message: str
