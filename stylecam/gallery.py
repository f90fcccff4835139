from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from stylecam.encoder import StyleEncoder
from stylecam.images import ImageSource, StyleDisplay, describe_source, load_image
from stylecam.state import AppState, StyleRepresentation

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".webp"}


def list_style_presets(styles_dir: str | Path) -> List[Path]:
    styles_dir = Path(styles_dir)
    if not styles_dir.exists():
        return []
    return sorted([p for p in styles_dir.iterdir() if p.is_file() and p.suffix.lower() in IMAGE_SUFFIXES])


class StyleGallery:
    """Fixed ordered list of bundled style images with a wrapping cursor."""

    def __init__(self, entries: Sequence[ImageSource], index: int = 0) -> None:
        if not entries:
            raise ValueError("Style gallery is empty")
        self.entries = list(entries)
        self.index = int(index) % len(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def current(self) -> ImageSource:
        return self.entries[self.index]

    def cycle(self) -> ImageSource:
        self.index = (self.index + 1) % len(self.entries)
        return self.current


class StyleSelector:
    """Replaces the active style image and re-encodes it.

    Every path goes through :meth:`refresh`: dim the display, load the image,
    encode and publish it, then undim. On failure the previous style stays
    current and the error propagates to the caller.
    """

    def __init__(
        self,
        gallery: Optional[StyleGallery],
        state: AppState,
        encoder: StyleEncoder,
        display: Optional[StyleDisplay] = None,
        size: Optional[Tuple[int, int]] = (300, 300),
    ) -> None:
        self.gallery = gallery
        self.state = state
        self.encoder = encoder
        self.display = display if display is not None else StyleDisplay()
        self.size = size

    async def refresh(self, source: ImageSource, notify_ui: bool = True) -> StyleRepresentation:
        generation = self.state.next_generation()
        if notify_ui:
            self.display.dim()
        try:
            image = await load_image(source, self.size)
            logger.info("Style image loaded: %s", describe_source(source))
            rep = await self.encoder.encode(image, self.state, generation, source)
        except BaseException:
            self.state.abandon(generation)
            if notify_ui:
                self._settle_display()
            raise
        if notify_ui:
            self._settle_display()
        return rep

    def _settle_display(self) -> None:
        # the last refresh to finish undims, showing whatever style is current
        if self.state.style_pending:
            return
        current = self.state.style
        self.display.show(current.image if current is not None else None)

    async def select(self, source: ImageSource) -> StyleRepresentation:
        return await self.refresh(source)

    async def cycle(self) -> StyleRepresentation:
        if self.gallery is None:
            raise ValueError("No style gallery configured")
        return await self.refresh(self.gallery.cycle())

    async def upload(self, data: Optional[bytes]) -> Optional[StyleRepresentation]:
        """Use uploaded image bytes as the style; no file selected is a no-op."""
        if not data:
            return None
        return await self.refresh(data)
