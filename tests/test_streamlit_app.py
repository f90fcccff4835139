from pathlib import Path

from streamlit.testing.v1 import AppTest

APP_PATH = str(Path(__file__).resolve().parent.parent / "stylecam" / "streamlit_app.py")


def test_app_renders_gallery_style(monkeypatch, styles_dir):
    monkeypatch.setenv("STYLECAM_STYLES_DIR", str(styles_dir))
    at = AppTest.from_file(APP_PATH, default_timeout=30).run()
    assert not at.exception
    assert at.title[0].value.startswith("stylecam")
    assert len(at.error) == 0


def test_app_without_styles_asks_for_one(monkeypatch, tmp_path):
    monkeypatch.setenv("STYLECAM_STYLES_DIR", str(tmp_path / "empty"))
    at = AppTest.from_file(APP_PATH, default_timeout=30).run()
    assert not at.exception
    assert "upload a style image" in at.error[0].value
