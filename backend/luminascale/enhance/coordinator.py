"""Sequences intake, upload compression, remote enhancement and finalize into one operation."""
import asyncio
import logging
import uuid
from typing import Callable, Optional

from luminascale.config import NETWORK_PROGRESS_SPAN, NETWORK_PROGRESS_START, UPLOAD_PIXEL_CEILING
from luminascale.enhance.cancellation import CancellationToken, run_cancellable
from luminascale.enhance.client import EnhancementClient, get_enhancement_client
from luminascale.enhance.models import EnhancementStyle, OperationStatus, ProgressStage, ProgressState
from luminascale.errors import LuminaError, OperationCancelled, UnknownEnhancementError, ValidationError
from luminascale.imaging.editor import ImageEditor
from luminascale.imaging.io import decode_image, validate_upload
from luminascale.imaging.models import DeviceProfile, EncodedImage
from luminascale.imaging.resize import prepare_for_upload

logger = logging.getLogger("luminascale.coordinator")

ProgressListener = Callable[[ProgressState], None]


class ProgressTracker:
    """Monotonically non-decreasing progress, published to listeners on every change."""

    def __init__(self):
        self._state = ProgressState(stage=ProgressStage.READING, percent=0.0)
        self._listeners: list[ProgressListener] = []

    @property
    def state(self) -> ProgressState:
        return self._state

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def update(self, stage: ProgressStage, percent: float) -> ProgressState:
        percent = min(100.0, max(self._state.percent, float(percent)))
        self._state = ProgressState(stage=ProgressStage(stage), percent=percent)
        for listener in list(self._listeners):
            listener(self._state)
        return self._state


class EnhancementOperation:
    """In-memory state of one enhancement, from intake to result."""

    def __init__(self, style: EnhancementStyle):
        self.operation_id = str(uuid.uuid4())
        self.style = EnhancementStyle(style)
        self.status = OperationStatus.PENDING
        self.error: Optional[LuminaError] = None
        self.result: Optional[EncodedImage] = None
        self.token = CancellationToken()
        self.progress = ProgressTracker()
        self._task: Optional[asyncio.Task] = None

    @property
    def done(self) -> bool:
        return self.status in (OperationStatus.COMPLETED, OperationStatus.FAILED, OperationStatus.CANCELLED)

    def cancel(self) -> None:
        self.token.cancel()
        if not self.done:
            self.status = OperationStatus.CANCELLED

    async def wait(self) -> "EnhancementOperation":
        if self._task is not None:
            await self._task
        return self

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "style": self.style.value,
            "status": self.status.value,
            "progress": self.progress.state.to_dict(),
            "error": self.error.to_dict() if self.error else None,
        }


class EnhancementSession:
    """
    One user's single logical thread of enhancement work.

    Starting an operation cancels the previous one. Every continuation checks
    the operation's token before touching session state, so a superseded
    operation's late result is dropped instead of overwriting a newer one.
    """

    def __init__(
        self,
        client: Optional[EnhancementClient] = None,
        device_profile: Optional[DeviceProfile] = None,
        pixel_ceiling: int = UPLOAD_PIXEL_CEILING,
    ):
        self.client = client or get_enhancement_client()
        self.device_profile = device_profile or DeviceProfile.desktop()
        self.pixel_ceiling = pixel_ceiling
        self.current: Optional[EnhancementOperation] = None
        self.enhanced: Optional[EncodedImage] = None
        self.editor: Optional[ImageEditor] = None

    def start(
        self,
        data: bytes,
        mime_type: Optional[str],
        style: EnhancementStyle = EnhancementStyle.BALANCED,
        listener: Optional[ProgressListener] = None,
    ) -> EnhancementOperation:
        """Validate synchronously, then run the operation in the background. Needs a running loop."""
        validate_upload(data, mime_type)
        self.reset()
        op = EnhancementOperation(style)
        if listener is not None:
            op.progress.subscribe(listener)
        op.progress.update(ProgressStage.READING, 5)
        self.current = op
        op._task = asyncio.create_task(self._run(op, data))
        logger.info("Started operation %s (%s, %s)", op.operation_id[:8], op.style.value, self.device_profile.tag)
        return op

    async def enhance(
        self,
        data: bytes,
        mime_type: Optional[str],
        style: EnhancementStyle = EnhancementStyle.BALANCED,
        listener: Optional[ProgressListener] = None,
    ) -> Optional[EncodedImage]:
        """Run one operation to the end. None when it was cancelled or superseded."""
        op = await self.start(data, mime_type, style, listener).wait()
        if op.status is OperationStatus.FAILED:
            raise op.error
        return op.result

    def reset(self) -> None:
        """Cancel the running operation, if any, and clear results."""
        if self.current is not None and not self.current.done:
            logger.info("Cancelling operation %s", self.current.operation_id[:8])
        if self.current is not None:
            self.current.cancel()
        if self.editor is not None:
            self.editor.close()
        self.current = None
        self.enhanced = None
        self.editor = None

    async def open_editor(self) -> ImageEditor:
        """The editor for the current result, decoded and first rendered off the event loop."""
        if self.editor is None:
            enhanced = self.enhanced
            if enhanced is None:
                raise ValidationError("There is no enhanced image to edit yet.")
            raster = await asyncio.to_thread(decode_image, enhanced.data)
            editor = await asyncio.to_thread(ImageEditor, raster)
            if self.enhanced is not enhanced:
                editor.close()
                raise ValidationError("There is no enhanced image to edit yet.")
            if self.editor is None:
                self.editor = editor
        return self.editor

    def _on_client_progress(self, op: EnhancementOperation, progress: ProgressState) -> None:
        if op.token.cancelled:
            return
        op.progress.update(progress.stage, NETWORK_PROGRESS_START + progress.percent * NETWORK_PROGRESS_SPAN)

    async def _run(self, op: EnhancementOperation, data: bytes) -> None:
        op.status = OperationStatus.RUNNING
        try:
            op.progress.update(ProgressStage.READING, 15)
            raster = await run_cancellable(asyncio.to_thread(decode_image, data), op.token)
            payload = await run_cancellable(
                asyncio.to_thread(prepare_for_upload, raster, self.device_profile, self.pixel_ceiling),
                op.token,
            )
            op.progress.update(ProgressStage.UPLOADING, NETWORK_PROGRESS_START)
            result = await self.client.enhance(
                payload,
                op.style,
                lambda p: self._on_client_progress(op, p),
                device_profile=self.device_profile,
                token=op.token,
            )
            op.token.raise_if_cancelled()
        except OperationCancelled:
            op.status = OperationStatus.CANCELLED
            logger.info("Operation %s cancelled", op.operation_id[:8])
            return
        except Exception as e:
            if op.token.cancelled:
                op.status = OperationStatus.CANCELLED
                logger.info("Discarding failure of cancelled operation %s: %s", op.operation_id[:8], e)
                return
            if isinstance(e, LuminaError):
                error = e
            else:
                logger.exception("Operation %s crashed: %s", op.operation_id[:8], e)
                error = UnknownEnhancementError(detail=str(e))
            op.error = error
            op.status = OperationStatus.FAILED
            logger.warning("Operation %s failed: %s (%s)", op.operation_id[:8], error.error_code, error.detail)
            return

        if op is not self.current:
            op.status = OperationStatus.CANCELLED
            logger.info("Discarding late result of superseded operation %s", op.operation_id[:8])
            return
        op.progress.update(ProgressStage.FINALIZING, 100)
        op.result = result
        op.status = OperationStatus.COMPLETED
        self.enhanced = result
        logger.info("Operation %s completed (%s, %s bytes)", op.operation_id[:8], result.mime_type, len(result.data))


# Singleton
_session: Optional[EnhancementSession] = None


def get_session(device_profile: Optional[DeviceProfile] = None) -> EnhancementSession:
    """The process-wide session; its device profile is fixed when first created."""
    global _session
    if _session is None:
        _session = EnhancementSession(device_profile=device_profile)
    return _session
