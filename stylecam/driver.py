"""Fixed-interval driver for the capture -> stylize -> render loop.

States::

    UNINITIALIZED -> LOADING_RESOURCES -> READY -> RUNNING
                            |
                            +-> FAILED

While RUNNING, a tick fires every ``settings.interval`` seconds. A tick with
no focus does nothing. Otherwise it captures a frame and starts an
independent stylization task; ticks never wait on earlier stylizations, so
renders may land out of order and the last write wins.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from typing import Awaitable, Callable, Optional, Set, Tuple

from stylecam.capture import FrameCapturer
from stylecam.config import Settings
from stylecam.encoder import StyleEncoder
from stylecam.errors import InitializationTimeout
from stylecam.gallery import StyleGallery, StyleSelector
from stylecam.images import ImageSource, StyleDisplay
from stylecam.models import ModelHandle, load_models
from stylecam.render import RenderTarget
from stylecam.state import AppState, StyleRepresentation
from stylecam.stylize import Stylizer

logger = logging.getLogger(__name__)

ModelLoader = Callable[..., Awaitable[Tuple[ModelHandle, ModelHandle]]]

_TIMING_LOG_LIMIT = 10


class DriverState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    LOADING_RESOURCES = "loading_resources"
    READY = "ready"
    RUNNING = "running"
    FAILED = "failed"


class Driver:
    def __init__(
        self,
        settings: Settings,
        capturer: FrameCapturer,
        target: Optional[RenderTarget] = None,
        has_focus: Optional[Callable[[], bool]] = None,
        gallery: Optional[StyleGallery] = None,
        display: Optional[StyleDisplay] = None,
        model_loader: ModelLoader = load_models,
    ) -> None:
        self.settings = settings
        self.capturer = capturer
        self.target = target if target is not None else RenderTarget(settings.render_size)
        self.has_focus = has_focus if has_focus is not None else (lambda: True)
        self.gallery = gallery
        self.display = display if display is not None else StyleDisplay()
        self._model_loader = model_loader

        self.app = AppState()
        self.status = DriverState.UNINITIALIZED
        self.encoder: Optional[StyleEncoder] = None
        self.stylizer: Optional[Stylizer] = None
        self.selector: Optional[StyleSelector] = None

        self._in_flight: Set[asyncio.Task] = set()
        self.ticks = 0
        self.skipped_unfocused = 0
        self.skipped_busy = 0
        self.skipped_no_frame = 0
        self.renders = 0

    def _set_status(self, status: DriverState) -> None:
        logger.info("Driver %s -> %s", self.status.value, status.value)
        self.status = status

    def _fail(self, message: str) -> None:
        self._set_status(DriverState.FAILED)
        self.target.show_error(message)

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def initialize(self, initial_source: Optional[ImageSource] = None) -> None:
        """Load both models and encode the initial style, then become READY.

        Any failure, including exceeding ``settings.init_timeout``, paints an
        error on the render target and propagates.
        """
        if self.status is not DriverState.UNINITIALIZED:
            raise RuntimeError(f"Driver already initialized (state={self.status.value})")
        self._set_status(DriverState.LOADING_RESOURCES)
        self.target.show_loading()
        try:
            await asyncio.wait_for(self._load(initial_source), timeout=self.settings.init_timeout)
        except asyncio.TimeoutError as e:
            self._fail("timed out")
            raise InitializationTimeout(
                f"Models and initial style not ready after {self.settings.init_timeout:g}s"
            ) from e
        except Exception as e:
            self._fail(str(e) or type(e).__name__)
            raise
        self._set_status(DriverState.READY)

    async def _load(self, initial_source: Optional[ImageSource]) -> None:
        if initial_source is None:
            if self.gallery is None:
                raise ValueError("No initial style: pass a style image or configure a gallery")
            initial_source = self.gallery.current

        prediction, transfer = await self._model_loader(self.settings.models_dir, self.settings.device)
        self.app.prediction_model = prediction
        self.app.transfer_model = transfer
        self.encoder = StyleEncoder(prediction)
        self.stylizer = Stylizer(transfer, self.target)
        self.selector = StyleSelector(
            self.gallery, self.app, self.encoder, self.display, self.settings.style_size
        )
        await self.selector.refresh(initial_source)

    def tick(self) -> Optional[asyncio.Task]:
        """Run one tick: capture now, stylize in the background."""
        if self.status not in (DriverState.READY, DriverState.RUNNING) or self.stylizer is None:
            raise RuntimeError(f"Driver is not ready (state={self.status.value})")
        self.ticks += 1
        if not self.has_focus():
            self.skipped_unfocused += 1
            logger.debug("Tick %d skipped: no focus", self.ticks)
            return None
        if self.settings.bound_in_flight and self._in_flight:
            self.skipped_busy += 1
            logger.debug("Tick %d skipped: previous stylization still running", self.ticks)
            return None

        frame = self.capturer.capture()
        if frame is None:
            self.skipped_no_frame += 1
            return None

        task = asyncio.create_task(self._stylize(self.stylizer, frame, self.app.style, self.ticks))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def _stylize(
        self, stylizer: Stylizer, frame: bytes, style: Optional[StyleRepresentation], tick: int
    ) -> None:
        t0 = time.perf_counter()
        try:
            out = await stylizer.stylize(frame, style)
        except Exception:
            logger.exception("Stylization failed on tick %d", tick)
            return
        if out is None:
            return
        self.renders += 1
        if self.renders <= _TIMING_LOG_LIMIT:
            logger.info(
                "Generated stylized image in %.1f milliseconds.", (time.perf_counter() - t0) * 1000.0
            )

    async def run(self, max_ticks: Optional[int] = None) -> None:
        """Fire ticks every ``settings.interval`` seconds until cancelled.

        ``max_ticks`` stops after that many ticks and waits for outstanding
        stylizations. Cancellation abandons them instead.
        """
        if self.status is not DriverState.READY:
            raise RuntimeError(f"Driver is not ready (state={self.status.value})")
        self._set_status(DriverState.RUNNING)

        loop = asyncio.get_running_loop()
        interval = float(self.settings.interval)
        next_at = loop.time()
        fired = 0
        try:
            while max_ticks is None or fired < max_ticks:
                self.tick()
                fired += 1
                if max_ticks is not None and fired >= max_ticks:
                    break
                next_at += interval
                delay = next_at - loop.time()
                if delay < 0:
                    # fell behind; missed ticks are dropped, not replayed
                    next_at = loop.time()
                    delay = 0.0
                await asyncio.sleep(delay)
        except asyncio.CancelledError:
            for task in list(self._in_flight):
                task.cancel()
            raise
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)

    async def start(self, initial_source: Optional[ImageSource] = None, max_ticks: Optional[int] = None) -> None:
        await self.initialize(initial_source)
        await self.run(max_ticks=max_ticks)

    def _require_selector(self) -> StyleSelector:
        if self.selector is None:
            raise RuntimeError("Driver has no style selector before initialization")
        return self.selector

    async def cycle_style(self) -> StyleRepresentation:
        return await self._require_selector().cycle()

    async def upload_style(self, data: Optional[bytes]) -> Optional[StyleRepresentation]:
        return await self._require_selector().upload(data)
