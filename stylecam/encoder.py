from __future__ import annotations

import asyncio
import logging
import time

import torch
from PIL import Image

from stylecam.images import ImageSource, pil_to_tensor
from stylecam.models import ModelHandle
from stylecam.state import AppState, StyleRepresentation

logger = logging.getLogger(__name__)


class StyleEncoder:
    """Turns a style image into the style representation via the prediction model."""

    def __init__(self, prediction_model: ModelHandle) -> None:
        self.model = prediction_model

    def _predict(self, image: Image.Image) -> torch.Tensor:
        # inputs and activations are freed on return; only the output survives
        return self.model.predict(pil_to_tensor(image, device=self.model.device))

    async def encode(
        self,
        image: Image.Image,
        state: AppState,
        generation: int,
        source: ImageSource,
    ) -> StyleRepresentation:
        """Encode ``image`` and publish it as the current style.

        The representation is built completely before the one-line publish,
        so stylization never observes a partial result. A result for an
        older generation than the one already published is returned but
        not made current.
        """
        t0 = time.perf_counter()
        tensor = await asyncio.to_thread(self._predict, image)
        rep = StyleRepresentation(tensor=tensor, source=source, generation=generation, image=image)
        if state.publish_style(rep):
            logger.info(
                "Generated style representation in %.1f milliseconds.",
                (time.perf_counter() - t0) * 1000.0,
            )
        else:
            logger.debug("Dropped style representation for stale generation %d", generation)
        return rep
