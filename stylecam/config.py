from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Tuple


def _repo_root() -> Path:
    return Path(__file__).resolve().parent.parent


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return float(default)
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return int(default)
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean (1/0, true/false, yes/no, on/off), got {raw!r}")


def _env_path(name: str, default: Path) -> Path:
    raw = os.environ.get(name)
    if raw:
        return Path(raw).expanduser()
    return default


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the live stylization loop."""

    models_dir: Path = field(default_factory=lambda: _repo_root() / "models")
    styles_dir: Path = field(default_factory=lambda: _repo_root() / "styles")
    interval: float = 0.4
    render_size: Tuple[int, int] = (300, 225)
    style_size: Tuple[int, int] = (300, 300)
    init_timeout: float = 60.0
    bound_in_flight: bool = False
    camera_index: int = 0
    jpeg_quality: int = 80
    device: str = "cpu"
    num_threads: int = 4

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """Build settings from ``STYLECAM_*`` env vars; explicit overrides win."""
        defaults = cls()
        settings = cls(
            models_dir=_env_path("STYLECAM_MODELS_DIR", defaults.models_dir),
            styles_dir=_env_path("STYLECAM_STYLES_DIR", defaults.styles_dir),
            interval=_env_float("STYLECAM_INTERVAL", defaults.interval),
            init_timeout=_env_float("STYLECAM_INIT_TIMEOUT", defaults.init_timeout),
            bound_in_flight=_env_bool("STYLECAM_BOUND_IN_FLIGHT", defaults.bound_in_flight),
            camera_index=_env_int("STYLECAM_CAMERA", defaults.camera_index),
            device=os.environ.get("STYLECAM_DEVICE", defaults.device),
            num_threads=_env_int("STYLECAM_THREADS", defaults.num_threads),
        )
        overrides = {k: v for k, v in overrides.items() if v is not None}
        if overrides:
            settings = replace(settings, **overrides)
        if settings.interval <= 0:
            raise ValueError("interval must be > 0")
        return settings
