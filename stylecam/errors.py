from __future__ import annotations


class StylecamError(RuntimeError):
    """Base class for fatal stylecam errors."""


class ModelLoadError(StylecamError):
    """A model manifest, graph or weight shard could not be loaded."""


class ImageLoadError(StylecamError):
    """A style image could not be read or decoded."""


class InitializationTimeout(StylecamError, TimeoutError):
    """Models and the initial style were not ready within the configured timeout."""
