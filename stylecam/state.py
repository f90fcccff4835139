from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Set

import torch
from PIL import Image

from stylecam.images import ImageSource
from stylecam.models import ModelHandle


@dataclass(frozen=True, eq=False)
class StyleRepresentation:
    """A complete style bottleneck produced from one style image."""

    tensor: torch.Tensor
    source: ImageSource
    generation: int
    image: Optional[Image.Image] = None


@dataclass
class AppState:
    """Shared state owned by the driver.

    ``style`` is only ever replaced by a single assignment in
    :meth:`publish_style`, so a reader always sees one whole representation.
    ``style_source`` always names the source of ``style``.
    """

    prediction_model: Optional[ModelHandle] = None
    transfer_model: Optional[ModelHandle] = None
    style: Optional[StyleRepresentation] = None
    style_source: Optional[ImageSource] = None
    generation: int = 0
    _loading: Set[int] = field(default_factory=set, repr=False)

    @property
    def models_ready(self) -> bool:
        return self.prediction_model is not None and self.transfer_model is not None

    @property
    def style_pending(self) -> bool:
        """True while any style refresh is still loading or encoding."""
        return bool(self._loading)

    def next_generation(self) -> int:
        self.generation += 1
        self._loading.add(self.generation)
        return self.generation

    def publish_style(self, rep: StyleRepresentation) -> bool:
        """Make ``rep`` current unless a newer style has already been published."""
        self._loading.discard(rep.generation)
        if self.style is not None and rep.generation <= self.style.generation:
            return False
        self.style = rep
        self.style_source = rep.source
        return True

    def abandon(self, generation: int) -> None:
        """Forget a refresh that failed; the current style stays in place."""
        self._loading.discard(generation)
