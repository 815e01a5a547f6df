from .client import EnhancementClient, get_enhancement_client
from .coordinator import EnhancementOperation, EnhancementSession, get_session
from .models import EnhancementStyle, OperationStatus, ProgressStage, ProgressState

__all__ = [
    "EnhancementClient",
    "EnhancementOperation",
    "EnhancementSession",
    "EnhancementStyle",
    "OperationStatus",
    "ProgressStage",
    "ProgressState",
    "get_enhancement_client",
    "get_session",
]
