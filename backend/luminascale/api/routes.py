"""API routes for upload, enhancement progress, editing and export."""
import asyncio
import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel

from luminascale.config import ACCEPTED_MIME_TYPES, MAX_UPLOAD_SIZE_BYTES, MAX_UPLOAD_SIZE_MB
from luminascale.enhance.coordinator import EnhancementSession, get_session
from luminascale.enhance.models import EnhancementStyle
from luminascale.errors import FileTooLargeError, ValidationError
from luminascale.imaging.io import encode_png, export_filename
from luminascale.imaging.models import AdjustmentState, DeviceProfile

logger = logging.getLogger("luminascale.api")
router = APIRouter(prefix="/api", tags=["enhance"])


def current_session(request: Request) -> EnhancementSession:
    """The process-wide session. The device class is read from the first request that creates it."""
    viewport = (request.headers.get("X-Viewport-Width") or "").strip()
    profile = DeviceProfile.detect(
        user_agent=request.headers.get("User-Agent"),
        viewport_width=int(viewport) if viewport.isdigit() else None,
    )
    return get_session(profile)


class AdjustmentPatch(BaseModel):
    """Partial AdjustmentState; omitted fields keep their current value."""

    rotation: Optional[int] = None
    flip_horizontal: Optional[bool] = None
    aspect_ratio: Optional[str] = None
    brightness: Optional[float] = None
    contrast: Optional[float] = None
    saturation: Optional[float] = None
    exposure: Optional[float] = None
    warmth: Optional[float] = None
    sharpness: Optional[float] = None
    clarity: Optional[float] = None
    highlights: Optional[float] = None


def _state_to_dict(state: AdjustmentState) -> dict:
    out = asdict(state)
    out["aspect_ratio"] = state.aspect_ratio.value
    return out


def _editor_to_dict(editor) -> dict:
    return {
        "state": _state_to_dict(editor.state),
        "processing": editor.is_processing,
        "width": editor.rendered.width,
        "height": editor.rendered.height,
    }


@router.get("/health")
async def health(session: EnhancementSession = Depends(current_session)):
    status = await session.client.check_health()
    return status.to_dict()


@router.get("/limits")
def get_limits():
    """Return upload limits and options for the client."""
    return {
        "accepted_mime_types": sorted(ACCEPTED_MIME_TYPES),
        "max_upload_size_mb": MAX_UPLOAD_SIZE_MB,
        "max_upload_size_bytes": MAX_UPLOAD_SIZE_BYTES,
        "styles": [s.value for s in EnhancementStyle],
    }


@router.post("/enhance")
async def enhance_upload(
    file: UploadFile = File(...),
    style: EnhancementStyle = Query(EnhancementStyle.BALANCED),
    session: EnhancementSession = Depends(current_session),
):
    """Upload an image and start enhancing it. Poll /api/operation for progress."""
    chunks: list[bytes] = []
    total = 0
    while chunk := await file.read(1024 * 1024):
        total += len(chunk)
        if total > MAX_UPLOAD_SIZE_BYTES:
            raise FileTooLargeError(f"File too large: {file.filename} (max {MAX_UPLOAD_SIZE_MB} MB)")
        chunks.append(chunk)
    op = session.start(b"".join(chunks), file.content_type, style)
    return op.to_dict()


@router.get("/operation")
async def get_operation(session: EnhancementSession = Depends(current_session)):
    """Status and progress of the current enhancement."""
    if session.current is None:
        raise HTTPException(404, "No enhancement in progress")
    return session.current.to_dict()


@router.post("/reset")
async def reset_session(session: EnhancementSession = Depends(current_session)):
    """Cancel any running enhancement and discard the current result."""
    session.reset()
    return {"ok": True}


@router.get("/result")
async def get_result(session: EnhancementSession = Depends(current_session)):
    if session.enhanced is None:
        raise HTTPException(404, "No enhanced image available")
    return Response(content=session.enhanced.data, media_type=session.enhanced.mime_type)


@router.post("/edit")
async def edit_image(patch: AdjustmentPatch, session: EnhancementSession = Depends(current_session)):
    """Apply adjustments. Detail sliders settle in the background; poll /api/edit/preview."""
    editor = await session.open_editor()
    changes = patch.model_dump(exclude_none=True)
    try:
        await editor.update(**changes)
    except ValueError as e:
        raise ValidationError(str(e)) from e
    return _editor_to_dict(editor)


@router.post("/edit/reset")
async def reset_adjustments(session: EnhancementSession = Depends(current_session)):
    editor = await session.open_editor()
    await editor.reset_adjustments()
    return _editor_to_dict(editor)


@router.get("/edit/preview")
async def edit_preview(session: EnhancementSession = Depends(current_session)):
    """Latest render, which may still be a fast preview while detail sliders settle."""
    editor = await session.open_editor()
    data = await asyncio.to_thread(encode_png, editor.rendered)
    return Response(content=data, media_type="image/png")


@router.get("/export")
async def export_image(session: EnhancementSession = Depends(current_session)):
    """Fully processed, lossless PNG for download."""
    editor = await session.open_editor()
    data = await editor.export_png()
    style = session.current.style.value if session.current else EnhancementStyle.BALANCED.value
    filename = export_filename(style)
    logger.info("Exporting %sx%s as %s", editor.rendered.width, editor.rendered.height, filename)
    return Response(
        content=data,
        media_type="image/png",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
