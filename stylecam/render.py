from __future__ import annotations

import logging
from typing import Callable, List, Tuple

import numpy as np
from PIL import Image, ImageDraw

logger = logging.getLogger(__name__)

Sink = Callable[[Image.Image], None]


class RenderTarget:
    """Fixed-size RGB surface. Every write replaces the whole frame."""

    def __init__(self, size: Tuple[int, int] = (300, 225)) -> None:
        self.size = (int(size[0]), int(size[1]))
        w, h = self.size
        self._pixels = np.zeros((h, w, 3), dtype=np.uint8)
        self.version = 0
        self._sinks: List[Sink] = []

    def add_sink(self, sink: Sink) -> None:
        self._sinks.append(sink)

    def write(self, image: Image.Image) -> None:
        if image.size != self.size:
            image = image.resize(self.size, resample=Image.BILINEAR)
        self._pixels = np.asarray(image.convert("RGB"), dtype=np.uint8).copy()
        self.version += 1
        snapshot = self.snapshot()
        for sink in self._sinks:
            try:
                sink(snapshot)
            except Exception:
                logger.exception("Render sink failed")

    def snapshot(self) -> Image.Image:
        return Image.fromarray(self._pixels)

    def pixels(self) -> np.ndarray:
        return self._pixels.copy()

    def _notice(self, lines: List[str], color: Tuple[int, int, int]) -> Image.Image:
        img = Image.new("RGB", self.size, (0, 0, 0))
        draw = ImageDraw.Draw(img)
        w, h = self.size
        y = h // 2 - 8 * len(lines)
        for line in lines:
            left, top, right, bottom = draw.textbbox((0, 0), line)
            draw.text(((w - (right - left)) // 2, y), line, fill=color)
            y += (bottom - top) + 6
        return img

    def show_loading(self) -> None:
        """Paint the placeholder shown while models load."""
        img = self._notice(["Loading models..."], (200, 200, 200))
        draw = ImageDraw.Draw(img)
        w, h = self.size
        r = min(w, h) // 8
        cx, cy = w // 2, h // 2 - 3 * r // 2
        draw.arc((cx - r, cy - r, cx + r, cy + r), start=30, end=330, fill=(200, 200, 200), width=3)
        self.write(img)

    def show_error(self, message: str) -> None:
        self.write(self._notice(["Could not start", message[:48]], (255, 96, 96)))
