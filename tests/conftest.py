import io
import sys
from pathlib import Path

import numpy as np
import pytest
import torch
import torch.nn as nn
from PIL import Image

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from stylecam.export_model import export_model
from stylecam.models import PREDICTION_DIR, TRANSFER_DIR

STYLE_CHANNELS = 8


class TinyPredictor(nn.Module):
    """Style bottleneck of fixed shape [1, 8, 1, 1] for any input size."""

    def __init__(self):
        super().__init__()
        self.conv = nn.Conv2d(3, STYLE_CHANNELS, kernel_size=3, padding=1)
        self.pool = nn.AdaptiveAvgPool2d(1)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.pool(torch.relu(self.conv(x)))


class TinyTransfer(nn.Module):
    """Adds a per-channel style bias to the content and squashes to [0, 1]."""

    def __init__(self):
        super().__init__()
        self.proj = nn.Conv2d(STYLE_CHANNELS, 3, kernel_size=1)

    def forward(self, content: torch.Tensor, style: torch.Tensor) -> torch.Tensor:
        return torch.sigmoid(content + self.proj(style))


class FakeCamera:
    def __init__(self, frame=None):
        self.frame = frame

    def latest(self):
        return None if self.frame is None else self.frame.copy()


def solid_image(color, size=(64, 48)) -> Image.Image:
    return Image.new("RGB", size, color)


def image_bytes(img: Image.Image, fmt: str = "PNG") -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def bgr_frame(w=640, h=480) -> np.ndarray:
    frame = np.zeros((h, w, 3), dtype=np.uint8)
    frame[:, : w // 2] = (255, 0, 0)
    frame[:, w // 2 :] = (0, 0, 255)
    return frame


@pytest.fixture(scope="session")
def models_dir(tmp_path_factory) -> Path:
    root = tmp_path_factory.mktemp("models")
    torch.manual_seed(0)
    # tiny shard size forces one tensor per shard
    export_model(torch.jit.script(TinyPredictor().eval()), root / PREDICTION_DIR, shard_mb=0.0001)
    export_model(torch.jit.script(TinyTransfer().eval()), root / TRANSFER_DIR, shard_mb=0.0001)
    return root


@pytest.fixture
def styles_dir(tmp_path) -> Path:
    d = tmp_path / "styles"
    d.mkdir()
    solid_image((220, 30, 30)).save(d / "a.png")
    solid_image((30, 220, 30)).save(d / "b.jpg")
    solid_image((30, 30, 220)).save(d / "c.png")
    (d / "notes.txt").write_text("not an image")
    return d
