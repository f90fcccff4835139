from __future__ import annotations

import asyncio
import io
import logging
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

import numpy as np
import torch
from PIL import Image, UnidentifiedImageError

from stylecam.errors import ImageLoadError

logger = logging.getLogger(__name__)

ImageSource = Union[str, Path, bytes]

DIMMED_OPACITY = 0.2


def describe_source(source: ImageSource) -> str:
    if isinstance(source, bytes):
        return f"<upload {len(source)} bytes>"
    return str(source)


def _decode(source: ImageSource, size: Optional[Tuple[int, int]]) -> Image.Image:
    try:
        if isinstance(source, bytes):
            img = Image.open(io.BytesIO(source))
        else:
            img = Image.open(source)
        img = img.convert("RGB")
    except (OSError, UnidentifiedImageError) as e:
        raise ImageLoadError(f"Could not load image {describe_source(source)}: {e}") from e
    if size is not None and img.size != tuple(size):
        img = img.resize(tuple(size), resample=Image.BICUBIC)
    return img


async def load_image(source: ImageSource, size: Optional[Tuple[int, int]] = None) -> Image.Image:
    """Decode ``source`` (a path or uploaded bytes) to RGB off the event loop."""
    return await asyncio.to_thread(_decode, source, size)


def pil_to_tensor(img: Image.Image, device: torch.device | str = "cpu") -> torch.Tensor:
    """RGB image -> float32 [1, 3, H, W] in [0, 1]."""
    arr = np.asarray(img.convert("RGB"), dtype=np.float32) / 255.0
    t = torch.from_numpy(arr).permute(2, 0, 1).contiguous().unsqueeze(0)
    return t.to(device=device, dtype=torch.float32)


def tensor_to_pil(t: torch.Tensor) -> Image.Image:
    """[3, H, W] or [1, 3, H, W] tensor in [0, 1] -> RGB image."""
    t = t.detach().cpu().clamp(0, 1)
    if t.dim() == 4:
        t = t[0]
    arr = (t.permute(1, 2, 0).numpy() * 255.0 + 0.5).astype(np.uint8)
    return Image.fromarray(arr)


class StyleDisplay:
    """The on-screen style image. Dimmed while a new style is loading."""

    def __init__(self) -> None:
        self.image: Optional[Image.Image] = None
        self.opacity: float = 1.0
        self._listeners: List[Callable[["StyleDisplay"], None]] = []

    def subscribe(self, listener: Callable[["StyleDisplay"], None]) -> None:
        self._listeners.append(listener)

    @property
    def loading(self) -> bool:
        return self.opacity < 1.0

    def dim(self) -> None:
        self.opacity = DIMMED_OPACITY
        self._notify()

    def show(self, image: Optional[Image.Image] = None) -> None:
        if image is not None:
            self.image = image
        self.opacity = 1.0
        self._notify()

    def composited(self) -> Optional[Image.Image]:
        """The image as it should be drawn, blended toward black while dimmed."""
        if self.image is None:
            return None
        if not self.loading:
            return self.image
        black = Image.new("RGB", self.image.size)
        return Image.blend(black, self.image, self.opacity)

    def _notify(self) -> None:
        for listener in self._listeners:
            try:
                listener(self)
            except Exception:
                logger.exception("Style display listener failed")
