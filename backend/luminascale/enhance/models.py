"""Enhancement request, progress and health models."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from luminascale.imaging.models import CompressedPayload


class EnhancementStyle(str, Enum):
    BALANCED = "balanced"
    CREATIVE = "creative"
    RESTORATION = "restoration"


class ProgressStage(str, Enum):
    READING = "reading"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    DOWNLOADING = "downloading"
    FINALIZING = "finalizing"


STAGE_LABELS = {
    ProgressStage.READING: "Preparing your image...",
    ProgressStage.UPLOADING: "Connecting to AI...",
    ProgressStage.PROCESSING: "AI enhancement in progress...",
    ProgressStage.DOWNLOADING: "Downloading result...",
    ProgressStage.FINALIZING: "Finalizing enhanced image...",
}


@dataclass(frozen=True)
class ProgressState:
    stage: ProgressStage
    percent: float

    @property
    def label(self) -> str:
        return STAGE_LABELS[self.stage]

    def to_dict(self) -> dict:
        return {"stage": self.stage.value, "percent": round(self.percent, 1), "label": self.label}


class OperationStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class EnhancementRequest:
    payload: CompressedPayload
    style: EnhancementStyle = EnhancementStyle.BALANCED

    def to_json(self) -> dict:
        return {"image": self.payload.to_json(), "style": EnhancementStyle(self.style).value}


@dataclass(frozen=True)
class HealthStatus:
    status: str  # "ok" | "degraded"
    has_api_key: bool
    api_status: str  # "connected" | "unreachable"
    timestamp: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "hasApiKey": self.has_api_key,
            "apiStatus": self.api_status,
            "timestamp": self.timestamp,
        }
