"""Interactive editing session over one source raster."""
import asyncio
import logging
from dataclasses import replace
from typing import Callable, Optional

from luminascale.config import SLOW_PASS_SETTLE_SECONDS
from luminascale.imaging import engine
from luminascale.imaging.io import encode_png
from luminascale.imaging.models import AdjustmentState, RasterImage
from luminascale.imaging.scheduler import DebounceScheduler

logger = logging.getLogger("luminascale.editor")

RenderListener = Callable[[RasterImage, bool], None]


class ImageEditor:
    """
    Holds the source raster, the current AdjustmentState and the latest render.

    Without detail adjustments every change re-renders in full. While any
    detail slider is active, every change renders a fast preview at once and
    defers the full render behind the settle window; a newer change replaces
    the pending one, so the slow pass runs at most once per window and the
    visible render always ends up reflecting the latest state.

    Renders run in worker threads. Every render is tagged with the version
    of the state it was made for, and a render for a superseded state is
    dropped.
    """

    def __init__(
        self,
        source: RasterImage,
        state: Optional[AdjustmentState] = None,
        scheduler: Optional[DebounceScheduler] = None,
        on_render: Optional[RenderListener] = None,
    ):
        self._source = source
        self._state = state or AdjustmentState()
        self._scheduler = scheduler or DebounceScheduler(SLOW_PASS_SETTLE_SECONDS)
        self._on_render = on_render
        self._version = 0
        self._closed = False
        self.full_renders = 1
        # (version, full_process) of the render on display
        self._shown = (0, True)
        self._rendered = engine.render(source, self._state, full_process=True)

    @property
    def source(self) -> RasterImage:
        return self._source

    @property
    def state(self) -> AdjustmentState:
        return self._state

    @property
    def rendered(self) -> RasterImage:
        return self._rendered

    @property
    def is_processing(self) -> bool:
        return self._scheduler.pending

    async def _render(self, version: int, full_process: bool) -> None:
        state = self._state
        rendered = await asyncio.to_thread(engine.render, self._source, state, full_process)
        if full_process:
            self.full_renders += 1
        if self._closed or version != self._version:
            logger.debug("Dropped render for superseded state %s", version)
            return
        if not full_process and self._shown == (version, True):
            return
        self._rendered = rendered
        self._shown = (version, full_process)
        if self._on_render:
            self._on_render(rendered, full_process)

    async def _render_full(self) -> None:
        if self._shown != (self._version, True):
            await self._render(self._version, full_process=True)

    async def apply(self, state: AdjustmentState) -> RasterImage:
        self._state = state
        self._version += 1
        version = self._version
        deferred = state.has_detail_adjustments
        if not deferred:
            self._scheduler.cancel()
        await self._render(version, full_process=not deferred)
        if deferred and version == self._version and not self._closed:
            self._scheduler.schedule(self._render_full)
        return self._rendered

    async def update(self, **changes) -> RasterImage:
        return await self.apply(replace(self._state, **changes))

    async def rotate_right(self) -> RasterImage:
        return await self.apply(self._state.rotated_right())

    async def toggle_flip(self) -> RasterImage:
        return await self.apply(self._state.flipped())

    async def reset_adjustments(self) -> RasterImage:
        return await self.apply(self._state.reset_adjustments())

    async def flush(self) -> RasterImage:
        """Run any deferred full render now and wait for it."""
        if self._scheduler.flush():
            logger.debug("Flushed deferred detail render")
        await self._scheduler.wait_idle()
        await self._render_full()
        return self._rendered

    async def settle(self) -> RasterImage:
        await self._scheduler.wait_idle()
        return self._rendered

    async def export_png(self) -> bytes:
        """Lossless, full-quality encode of the fully processed render."""
        rendered = await self.flush()
        return await asyncio.to_thread(encode_png, rendered)

    def close(self) -> None:
        """Cancel deferred work. Renders still in flight are discarded."""
        self._closed = True
        self._scheduler.cancel()
