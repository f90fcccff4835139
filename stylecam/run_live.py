from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Optional, Set

import cv2
import numpy as np
import torch
from PIL import Image

from stylecam.capture import CameraDevice, FrameCapturer
from stylecam.config import Settings
from stylecam.driver import Driver
from stylecam.errors import StylecamError
from stylecam.gallery import StyleGallery, list_style_presets
from stylecam.images import StyleDisplay
from stylecam.render import RenderTarget

logger = logging.getLogger(__name__)

OUTPUT_WINDOW = "stylecam"
STYLE_WINDOW = "stylecam style"
UI_POLL_SECONDS = 0.03


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description=(
            "Live neural style transfer on the webcam.\n"
            "Keys: n = next gallery style, q/Esc = quit."
        )
    )
    p.add_argument("--models", type=str, default=None, help="Models dir (style-prediction/ + style-transfer/).")
    p.add_argument("--styles", type=str, default=None, help="Directory of bundled style images.")
    p.add_argument("--style", type=str, default=None, help="Custom style image, used as if uploaded.")
    p.add_argument("--camera", type=int, default=None, help="Camera index.")
    p.add_argument("--interval", type=float, default=None, help="Seconds between ticks (default 0.4).")
    p.add_argument(
        "--bound-in-flight",
        action="store_true",
        default=None,
        help="Skip a tick while the previous stylization is still running.",
    )
    return p


def _to_bgr(img: Image.Image) -> np.ndarray:
    return cv2.cvtColor(np.asarray(img.convert("RGB")), cv2.COLOR_RGB2BGR)


def _window_visible(name: str) -> bool:
    try:
        return cv2.getWindowProperty(name, cv2.WND_PROP_VISIBLE) >= 1
    except cv2.error:
        return False


def _show_style(display: StyleDisplay) -> None:
    img = display.composited()
    if img is not None:
        cv2.imshow(STYLE_WINDOW, _to_bgr(img))


async def _ui_loop(driver: Driver, run_task: asyncio.Task) -> None:
    pending: Set[asyncio.Task] = set()

    def _report(task: asyncio.Task) -> None:
        pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Style change failed: %s", task.exception())

    while not run_task.done():
        key = cv2.waitKey(1) & 0xFF
        if key in (ord("q"), 27):
            run_task.cancel()
            break
        if key == ord("n") and driver.gallery is not None:
            task = asyncio.create_task(driver.cycle_style())
            pending.add(task)
            task.add_done_callback(_report)
        await asyncio.sleep(UI_POLL_SECONDS)


async def _run(settings: Settings, gallery: Optional[StyleGallery], custom_style: Optional[bytes]) -> None:
    target = RenderTarget(settings.render_size)
    target.add_sink(lambda img: cv2.imshow(OUTPUT_WINDOW, _to_bgr(img)))
    display = StyleDisplay()
    display.subscribe(_show_style)

    camera = CameraDevice(settings.camera_index).start()
    capturer = FrameCapturer(camera, size=settings.render_size, quality=settings.jpeg_quality)
    cv2.namedWindow(OUTPUT_WINDOW, cv2.WINDOW_AUTOSIZE)

    driver = Driver(
        settings,
        capturer,
        target=target,
        has_focus=lambda: _window_visible(OUTPUT_WINDOW),
        gallery=gallery,
        display=display,
    )
    try:
        init_task = asyncio.create_task(driver.initialize(custom_style))
        while not init_task.done():
            cv2.waitKey(1)
            await asyncio.sleep(UI_POLL_SECONDS)
        await init_task

        run_task = asyncio.create_task(driver.run())
        await _ui_loop(driver, run_task)
        try:
            await run_task
        except asyncio.CancelledError:
            pass
    finally:
        camera.release()
        cv2.destroyAllWindows()

    print(f"ticks={driver.ticks} renders={driver.renders} unfocused={driver.skipped_unfocused}")


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    args = build_parser().parse_args()

    settings = Settings.from_env(
        models_dir=Path(args.models) if args.models else None,
        styles_dir=Path(args.styles) if args.styles else None,
        camera_index=args.camera,
        interval=args.interval,
        bound_in_flight=args.bound_in_flight,
    )
    torch.set_num_threads(settings.num_threads)

    presets = list_style_presets(settings.styles_dir)
    gallery = StyleGallery(presets) if presets else None
    custom_style: Optional[bytes] = None
    if args.style:
        style_path = Path(args.style)
        if not style_path.exists():
            raise SystemExit(f"Missing style image: {style_path}")
        custom_style = style_path.read_bytes()
    if gallery is None and custom_style is None:
        raise SystemExit(f"No style images in {settings.styles_dir}; add some or pass --style.")

    try:
        asyncio.run(_run(settings, gallery, custom_style))
    except StylecamError as e:
        raise SystemExit(f"stylecam: {e}") from e
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
