#!/usr/bin/env python3
from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import streamlit as st
import torch

REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from stylecam.capture import CameraDevice, FrameCapturer
from stylecam.config import Settings
from stylecam.driver import Driver
from stylecam.errors import StylecamError
from stylecam.gallery import StyleGallery, list_style_presets
from stylecam.images import ImageSource, StyleDisplay
from stylecam.models import ModelHandle, load_models
from stylecam.render import RenderTarget

_TORCH_THREADS_STATE_KEY = "_stylecam_torch_threads"
_STYLE_INDEX_STATE_KEY = "_stylecam_style_index"
_RUNNING_STATE_KEY = "_stylecam_running"
_UI_POLL_SECONDS = 0.05


def _configure_torch_threads(num_threads: int) -> None:
    """Configure torch threads once per Streamlit session.

    Streamlit re-runs the script on every interaction, so the first value
    sticks until restart.
    """
    previous = st.session_state.get(_TORCH_THREADS_STATE_KEY)
    if previous is None:
        try:
            torch.set_num_threads(int(num_threads))
        except RuntimeError as e:
            st.warning(f"Could not set torch threads ({e}).")
        st.session_state[_TORCH_THREADS_STATE_KEY] = int(num_threads)
        return
    if previous != int(num_threads):
        st.info("Torch thread settings can’t be changed after the app has started. Restart Streamlit to apply.")


@st.cache_resource(show_spinner=False)
def _load_models(models_dir: str, device_str: str) -> Tuple[ModelHandle, ModelHandle]:
    return asyncio.run(load_models(models_dir, device_str))


@st.cache_resource(show_spinner=False)
def _open_camera(index: int) -> CameraDevice:
    return CameraDevice(index).start()


async def _live(
    driver: Driver,
    initial: ImageSource,
    out_placeholder,
    style_placeholder,
    stats_placeholder,
) -> None:
    shown = -1

    def _refresh_output() -> None:
        nonlocal shown
        if driver.target.version != shown:
            shown = driver.target.version
            out_placeholder.image(driver.target.snapshot(), caption="Stylized", width="stretch")

    init_task = asyncio.create_task(driver.initialize(initial))
    while not init_task.done():
        _refresh_output()
        await asyncio.sleep(_UI_POLL_SECONDS)
    try:
        await init_task
    finally:
        _refresh_output()

    style_img = driver.display.composited()
    if style_img is not None:
        style_placeholder.image(style_img, caption="Active style", width="stretch")

    run_task = asyncio.create_task(driver.run())
    try:
        while not run_task.done():
            _refresh_output()
            stats_placeholder.caption(
                f"ticks {driver.ticks} · renders {driver.renders} · in flight {driver.in_flight}"
            )
            await asyncio.sleep(_UI_POLL_SECONDS)
    finally:
        run_task.cancel()


def main() -> None:
    st.set_page_config(page_title="stylecam (Live NST)", layout="wide")
    st.title("stylecam: Live Neural Style Transfer")
    st.caption("Webcam + style image = stylized stream. Two pretrained graphs: style prediction and style transfer.")

    base = Settings.from_env()

    with st.sidebar:
        st.header("Runtime")
        device_str = st.selectbox("Device", options=["cpu", "cuda"], index=0)
        interval = st.slider("Tick interval (s)", min_value=0.1, max_value=2.0, value=float(base.interval), step=0.1)
        bound = st.checkbox("Skip ticks while a stylization is running", value=base.bound_in_flight)
        num_threads = st.number_input("torch threads", min_value=1, max_value=16, value=int(base.num_threads), step=1)
        camera_index = st.number_input("Camera index", min_value=0, max_value=8, value=int(base.camera_index), step=1)
        models_dir = st.text_input("Models dir", value=str(base.models_dir))
        st.caption("Each model dir holds `model.json`, the graph and its weight shards.")
        st.caption("Create one: `python3 -m stylecam.export_model --module scripted.pt --out models/style-transfer`")

    _configure_torch_threads(int(num_threads))
    settings = Settings.from_env(
        models_dir=Path(models_dir),
        interval=float(interval),
        bound_in_flight=bool(bound),
        camera_index=int(camera_index),
        device=device_str,
    )

    styles: List[Path] = list_style_presets(settings.styles_dir)
    col1, col2 = st.columns(2)
    with col1:
        st.subheader("Style")
        if _STYLE_INDEX_STATE_KEY not in st.session_state:
            st.session_state[_STYLE_INDEX_STATE_KEY] = 0
        gallery: Optional[StyleGallery] = None
        if styles:
            gallery = StyleGallery(styles, index=st.session_state[_STYLE_INDEX_STATE_KEY])
            if st.button("Shuffle style"):
                gallery.cycle()
                st.session_state[_STYLE_INDEX_STATE_KEY] = gallery.index
        else:
            st.warning("Add some style images to `styles/` (jpg/png) or upload one.")
        upload = st.file_uploader("Choose an image to upload", type=["jpg", "jpeg", "png", "webp"])
        style_placeholder = st.empty()

    with col2:
        st.subheader("Output")
        out_placeholder = st.empty()
        stats_placeholder = st.empty()
        running = st.toggle("Live", value=st.session_state.get(_RUNNING_STATE_KEY, False))
        st.session_state[_RUNNING_STATE_KEY] = running

    uploaded: Optional[bytes] = upload.getvalue() if upload is not None else None
    initial: Optional[ImageSource] = uploaded or (gallery.current if gallery is not None else None)
    if initial is None:
        st.error("Select a style preset or upload a style image first.")
        return
    style_placeholder.image(initial if isinstance(initial, bytes) else str(initial), width="stretch")

    if not running:
        return

    try:
        with st.spinner("Loading models…"):
            models = _load_models(str(settings.models_dir), settings.device)
    except StylecamError as e:
        st.error(f"Could not load models: {e}")
        return

    async def _cached_loader(*_args) -> Tuple[ModelHandle, ModelHandle]:
        return models

    camera = _open_camera(settings.camera_index)
    if not camera.opened:
        st.warning("Camera not available; output will stay on the loading screen.")
    driver = Driver(
        settings,
        FrameCapturer(camera, size=settings.render_size, quality=settings.jpeg_quality),
        target=RenderTarget(settings.render_size),
        gallery=gallery,
        display=StyleDisplay(),
        model_loader=_cached_loader,
    )
    try:
        asyncio.run(_live(driver, initial, out_placeholder, style_placeholder, stats_placeholder))
    except StylecamError as e:
        st.error(f"Could not start: {e}")


if __name__ == "__main__":
    main()
