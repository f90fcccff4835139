from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from stylecam.config import Settings
from stylecam.render import RenderTarget


def test_defaults():
    s = Settings()
    assert s.interval == 0.4
    assert s.render_size == (300, 225)
    assert s.style_size == (300, 300)
    assert s.bound_in_flight is False


def test_from_env_reads_variables(monkeypatch, tmp_path):
    monkeypatch.setenv("STYLECAM_MODELS_DIR", str(tmp_path))
    monkeypatch.setenv("STYLECAM_INTERVAL", "0.25")
    monkeypatch.setenv("STYLECAM_BOUND_IN_FLIGHT", "yes")
    s = Settings.from_env()
    assert s.models_dir == Path(tmp_path)
    assert s.interval == 0.25
    assert s.bound_in_flight is True


def test_overrides_win_over_env(monkeypatch):
    monkeypatch.setenv("STYLECAM_INTERVAL", "0.25")
    s = Settings.from_env(interval=1.5, camera_index=None)
    assert s.interval == 1.5
    assert s.camera_index == 0


def test_bad_env_value_names_variable(monkeypatch):
    monkeypatch.setenv("STYLECAM_CAMERA", "front")
    with pytest.raises(ValueError, match="STYLECAM_CAMERA"):
        Settings.from_env()


def test_non_positive_interval_rejected():
    with pytest.raises(ValueError):
        Settings.from_env(interval=0)


def test_write_replaces_whole_frame():
    target = RenderTarget((30, 20))
    target.write(Image.new("RGB", (30, 20), (255, 0, 0)))
    target.write(Image.new("RGB", (60, 40), (0, 255, 0)))
    px = target.pixels()
    assert px.shape == (20, 30, 3)
    assert np.all(px == np.array([0, 255, 0], dtype=np.uint8))
    assert target.version == 2


def test_failing_sink_does_not_block_write():
    target = RenderTarget((10, 10))
    seen = []

    def broken(_img):
        raise RuntimeError("window closed")

    target.add_sink(broken)
    target.add_sink(seen.append)
    target.write(Image.new("RGB", (10, 10)))
    assert len(seen) == 1


def test_loading_and_error_notices_are_distinct():
    target = RenderTarget((300, 225))
    target.show_loading()
    loading = target.pixels()
    target.show_error("boom")
    error = target.pixels()
    assert loading.any() and error.any()
    assert not np.array_equal(loading, error)
    assert target.version == 2


@pytest.mark.parametrize("raw,expected", [("1", True), ("on", True), ("No", False), ("false", False)])
def test_bool_env_values(monkeypatch, raw, expected):
    monkeypatch.setenv("STYLECAM_BOUND_IN_FLIGHT", raw)
    assert Settings.from_env().bound_in_flight is expected


def test_unrecognized_bool_env_names_variable(monkeypatch):
    monkeypatch.setenv("STYLECAM_BOUND_IN_FLIGHT", "maybe")
    with pytest.raises(ValueError, match="STYLECAM_BOUND_IN_FLIGHT"):
        Settings.from_env()
