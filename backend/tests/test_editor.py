"""
Tests for the debounce scheduler and the interactive editor.
"""
import asyncio

import numpy as np

from luminascale.imaging import engine
from luminascale.imaging.editor import ImageEditor
from luminascale.imaging.io import decode_image
from luminascale.imaging.models import AdjustmentState
from luminascale.imaging.scheduler import DebounceScheduler
from conftest import make_raster


def new_editor(delay=0.2, state=None, **kwargs):
    return ImageEditor(make_raster(16, 12), state=state, scheduler=DebounceScheduler(delay), **kwargs)


def record_render_threads(monkeypatch):
    """Patch engine.render to note whether each call ran on the event loop thread."""
    seen = []
    real_render = engine.render

    def render(*args, **kwargs):
        try:
            asyncio.get_running_loop()
            seen.append("loop")
        except RuntimeError:
            seen.append("worker")
        return real_render(*args, **kwargs)

    monkeypatch.setattr(engine, "render", render)
    return seen


class TestDebounceScheduler:
    """Schedule-with-cancel-previous."""

    def test_only_last_callback_runs(self):
        """A burst of schedules inside the window runs once, with the latest callback."""
        calls = []

        async def scenario():
            scheduler = DebounceScheduler(0.2)
            for i in range(5):
                scheduler.schedule(lambda i=i: calls.append(i))
                await asyncio.sleep(0.01)
            assert scheduler.pending
            await scheduler.wait_idle()
            assert not scheduler.pending

        asyncio.run(scenario())
        assert calls == [4]

    def test_flush_runs_now(self):
        """flush fires the pending callback immediately, once."""
        calls = []

        async def scenario():
            scheduler = DebounceScheduler(10)
            scheduler.schedule(lambda: calls.append("fired"))
            assert scheduler.flush() is True
            assert scheduler.flush() is False
            await asyncio.wait_for(scheduler.wait_idle(), timeout=1)

        asyncio.run(scenario())
        assert calls == ["fired"]

    def test_cancel(self):
        """A cancelled callback never runs."""
        calls = []

        async def scenario():
            scheduler = DebounceScheduler(0.05)
            scheduler.schedule(lambda: calls.append("fired"))
            scheduler.cancel()
            await asyncio.sleep(0.1)

        asyncio.run(scenario())
        assert calls == []

    def test_coroutine_callback_stays_pending_until_done(self):
        """An async callback keeps the scheduler busy while it runs."""
        calls = []

        async def work():
            await asyncio.sleep(0.1)
            calls.append("done")

        async def scenario():
            scheduler = DebounceScheduler(0.01)
            scheduler.schedule(work)
            await asyncio.sleep(0.05)
            assert scheduler.pending
            assert calls == []
            await asyncio.wait_for(scheduler.wait_idle(), timeout=1)
            assert not scheduler.pending

        asyncio.run(scenario())
        assert calls == ["done"]

    def test_cancel_abandons_running_coroutine(self):
        """Cancelling stops an async callback that already started."""
        calls = []

        async def work():
            await asyncio.sleep(0.2)
            calls.append("done")

        async def scenario():
            scheduler = DebounceScheduler(0.01)
            scheduler.schedule(work)
            await asyncio.sleep(0.05)
            scheduler.cancel()
            assert not scheduler.pending
            await asyncio.sleep(0.3)

        asyncio.run(scenario())
        assert calls == []


class TestImageEditor:
    """Fast preview, deferred full render and export."""

    def test_initial_render_is_full(self):
        """Opening the editor renders once."""
        editor = new_editor()
        assert editor.full_renders == 1
        assert np.array_equal(editor.rendered.pixels, editor.source.pixels)

    def test_fast_slider_renders_at_once(self):
        """Without detail sliders, tonal changes render in full straight away."""

        async def scenario():
            editor = new_editor()
            await editor.update(brightness=150)
            assert not editor.is_processing
            assert editor.full_renders == 2
            expected = engine.render(editor.source, editor.state)
            assert np.array_equal(editor.rendered.pixels, expected.pixels)

        asyncio.run(scenario())

    def test_detail_burst_renders_once(self):
        """Rapid detail changes show a fast preview and one full render after settling."""
        renders = []

        async def scenario():
            editor = new_editor(on_render=lambda image, full: renders.append(full))
            for value in (20, 40, 60):
                await editor.update(sharpness=value)
            await editor.update(clarity=30)

            assert editor.is_processing
            assert editor.full_renders == 1
            preview = engine.render(editor.source, editor.state, full_process=False)
            assert np.array_equal(editor.rendered.pixels, preview.pixels)

            await editor.settle()
            assert not editor.is_processing
            assert editor.full_renders == 2
            final = engine.render(editor.source, AdjustmentState(sharpness=60, clarity=30))
            assert np.array_equal(editor.rendered.pixels, final.pixels)

        asyncio.run(scenario())
        assert renders == [False, False, False, False, True]

    def test_fast_drag_with_active_detail_runs_one_slow_pass(self):
        """While a detail slider is active, a tonal drag previews each step and fully renders once."""
        renders = []

        async def scenario():
            editor = new_editor(
                delay=0.3,
                state=AdjustmentState(sharpness=50),
                on_render=lambda image, full: renders.append(full),
            )
            for step in range(1, 21):
                await editor.update(brightness=100 + step * 5)
            assert editor.full_renders == 1
            assert editor.is_processing

            await editor.settle()
            assert editor.full_renders == 2
            expected = engine.render(editor.source, AdjustmentState(sharpness=50, brightness=200))
            assert np.array_equal(editor.rendered.pixels, expected.pixels)

        asyncio.run(scenario())
        assert renders == [False] * 20 + [True]

    def test_clearing_detail_cancels_pending_render(self):
        """Dropping the last detail slider renders in full at once and cancels the deferred pass."""

        async def scenario():
            editor = new_editor()
            await editor.update(sharpness=50)
            assert editor.is_processing
            await editor.update(sharpness=0, brightness=120)
            assert not editor.is_processing
            assert editor.full_renders == 2
            await asyncio.sleep(0.3)
            assert editor.full_renders == 2
            expected = engine.render(editor.source, AdjustmentState(brightness=120))
            assert np.array_equal(editor.rendered.pixels, expected.pixels)

        asyncio.run(scenario())

    def test_renders_run_off_the_event_loop(self, monkeypatch):
        """Previews, deferred full renders and export all render in worker threads."""
        seen = record_render_threads(monkeypatch)

        async def scenario():
            editor = new_editor(delay=0.05)
            seen.clear()
            await editor.update(brightness=130)
            await editor.update(clarity=40)
            await editor.settle()
            await editor.update(highlights=20)
            await editor.export_png()

        asyncio.run(scenario())
        assert len(seen) == 5
        assert set(seen) == {"worker"}

    def test_export_flushes_pending_render(self):
        """Export always encodes the fully processed image as PNG."""

        async def scenario():
            editor = new_editor(delay=10)
            await editor.update(clarity=50, highlights=40)
            data = await editor.export_png()
            assert not editor.is_processing
            return editor, data

        editor, data = asyncio.run(scenario())
        assert data.startswith(b"\x89PNG")
        expected = engine.render(editor.source, editor.state)
        assert np.array_equal(decode_image(data).pixels, expected.pixels)

    def test_close_drops_deferred_render(self):
        """A closed editor never runs its pending full render."""

        async def scenario():
            editor = new_editor(delay=0.05)
            await editor.update(sharpness=80)
            editor.close()
            assert not editor.is_processing
            await asyncio.sleep(0.2)
            return editor

        editor = asyncio.run(scenario())
        assert editor.full_renders == 1

    def test_geometry_helpers(self):
        """Rotate, flip and reset keep the render in step with the state."""

        async def scenario():
            editor = new_editor()
            await editor.rotate_right()
            assert editor.rendered.size == (12, 16)
            await editor.toggle_flip()
            await editor.update(brightness=80, warmth=40)
            await editor.reset_adjustments()
            return editor

        editor = asyncio.run(scenario())
        assert editor.state == AdjustmentState(rotation=90, flip_horizontal=True)
        expected = engine.render(editor.source, editor.state)
        assert np.array_equal(editor.rendered.pixels, expected.pixels)
