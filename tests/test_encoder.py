import asyncio

import pytest

from conftest import STYLE_CHANNELS, solid_image
from stylecam.encoder import StyleEncoder
from stylecam.models import PREDICTION_DIR, load_model
from stylecam.state import AppState


@pytest.fixture
def encoder(models_dir):
    return StyleEncoder(load_model(models_dir / PREDICTION_DIR))


@pytest.mark.parametrize("size", [(300, 300), (64, 17), (5, 400)])
def test_representation_shape_is_independent_of_image_size(encoder, size):
    state = AppState()
    gen = state.next_generation()
    rep = asyncio.run(encoder.encode(solid_image((10, 120, 240), size), state, gen, "style.png"))
    assert tuple(rep.tensor.shape) == (1, STYLE_CHANNELS, 1, 1)
    assert state.style is rep
    assert not state.style_pending


def test_older_generation_never_replaces_newer(encoder):
    state = AppState()
    old = state.next_generation()
    new = state.next_generation()

    async def scenario():
        newer = await encoder.encode(solid_image((0, 0, 255)), state, new, "new.png")
        older = await encoder.encode(solid_image((255, 0, 0)), state, old, "old.png")
        return newer, older

    newer, older = asyncio.run(scenario())
    assert state.style is newer
    assert state.style is not older
    assert state.style.source == "new.png"


def test_pending_until_latest_generation_lands(encoder):
    state = AppState()
    first = state.next_generation()
    state.next_generation()

    asyncio.run(encoder.encode(solid_image((1, 2, 3)), state, first, "a.png"))
    assert state.style.generation == first
    assert state.style_pending
