from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

T = TypeVar("T")

# Model input geometry: 224x224 RGB, channel-interleaved
TENSOR_SIZE = 224
TENSOR_CHANNELS = 3
TENSOR_LENGTH = TENSOR_SIZE * TENSOR_SIZE * TENSOR_CHANNELS


class Category(str, Enum):
    SAFE = "safe"
    UNCERTAIN = "uncertain"
    NSFW = "nsfw"


class ImageFormat(str, Enum):
    """Raster formats accepted for moderation."""
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    GIF = "gif"


class ImageMetadata(BaseModel):
    """Container metadata decoded from the upload header."""
    model_config = ConfigDict(frozen=True)

    format: Optional[str] = None  # lower-case container name as decoded
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def has_dimensions(self) -> bool:
        return bool(self.width and self.height and self.width > 0 and self.height > 0)


class Dimensions(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)


class DetectionResult(BaseModel):
    """Verdict returned by a detection call.

    A populated ``error`` always comes with ``is_nsfw=True``: failures block.
    """
    model_config = ConfigDict(frozen=True)

    is_nsfw: bool
    confidence: float = Field(..., ge=0.0, le=1.0)
    category: Category
    error: Optional[str] = None

    @model_validator(mode="after")
    def _check_fail_closed(self) -> "DetectionResult":
        if self.error is not None and not self.is_nsfw:
            raise ValueError("a detection carrying an error must be blocking")
        if self.category == Category.NSFW and not self.is_nsfw:
            raise ValueError("category nsfw requires is_nsfw=True")
        if self.category != Category.NSFW and self.is_nsfw:
            raise ValueError(f"category {self.category.value} cannot be blocking")
        return self


class AuditRecord(BaseModel):
    """Immutable snapshot of one completed detection call."""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    user_id: Optional[str] = None
    file_name: str
    is_nsfw: bool
    confidence: float = Field(..., ge=0.0, le=1.0)
    file_size: int = Field(0, ge=0)
    dimensions: Optional[Dimensions] = None
    error: Optional[str] = None


class AuditStatsDTO(BaseModel):
    """Aggregate statistics derived from the audit log."""
    total_checks: int = 0
    blocked_count: int = 0
    allowed_count: int = 0
    block_rate_percent: float = 0.0


class AuditLogResponseDTO(BaseModel):
    records: List[AuditRecord] = Field(default_factory=list)
    count: int = 0


# =============================================================================
# Stage results
# =============================================================================

class FailureKind(str, Enum):
    INPUT_REJECTED = "input_rejected"
    PREPROCESSING_FAILED = "preprocessing_failed"
    ENGINE_FAILED = "engine_failed"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class StageFailure:
    kind: FailureKind
    message: str
    metadata: Optional[ImageMetadata] = None


@dataclass(frozen=True)
class StageResult(Generic[T]):
    """Outcome of one pipeline stage: either a value or a failure, never both."""
    value: Optional[T] = None
    failure: Optional[StageFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T) -> "StageResult[T]":
        return cls(value=value)

    @classmethod
    def fail(
        cls,
        kind: FailureKind,
        message: str,
        metadata: Optional[ImageMetadata] = None,
    ) -> "StageResult[T]":
        return cls(failure=StageFailure(kind=kind, message=message, metadata=metadata))
