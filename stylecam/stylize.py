from __future__ import annotations

import asyncio
import io
import logging
from typing import Optional

from PIL import Image, UnidentifiedImageError

from stylecam.images import pil_to_tensor, tensor_to_pil
from stylecam.models import ModelHandle
from stylecam.render import RenderTarget
from stylecam.state import StyleRepresentation

logger = logging.getLogger(__name__)


def decode_frame(frame: bytes) -> Optional[Image.Image]:
    """Fully decode an encoded frame, or ``None`` if it is not a usable image."""
    try:
        img = Image.open(io.BytesIO(frame))
        img.load()
    except (OSError, UnidentifiedImageError, ValueError):
        return None
    if img.width == 0 or img.height == 0:
        return None
    return img.convert("RGB")


class Stylizer:
    """Runs the transfer model on one frame and writes the result to the render target."""

    def __init__(self, transfer_model: ModelHandle, target: RenderTarget) -> None:
        self.model = transfer_model
        self.target = target

    def _run(self, frame: bytes, style: StyleRepresentation) -> Optional[Image.Image]:
        content = decode_frame(frame)
        if content is None:
            return None
        content_tensor = pil_to_tensor(content, device=self.model.device)
        stylized = self.model.predict(content_tensor, style.tensor).squeeze(0)
        return tensor_to_pil(stylized)

    async def stylize(
        self, frame: Optional[bytes], style: Optional[StyleRepresentation]
    ) -> Optional[Image.Image]:
        """Stylize ``frame`` with ``style``; ``None`` means the cycle was skipped."""
        if frame is None or style is None:
            return None
        out = await asyncio.to_thread(self._run, frame, style)
        if out is None:
            logger.debug("Frame not decodable; skipping render")
            return None
        self.target.write(out)
        return out
