import asyncio
import json
import shutil

import pytest
import torch

from stylecam.errors import ModelLoadError
from stylecam.models import MANIFEST_NAME, PREDICTION_DIR, TRANSFER_DIR, load_model, load_models


def test_load_model_from_directory_and_manifest(models_dir):
    by_dir = load_model(models_dir / PREDICTION_DIR)
    by_manifest = load_model(models_dir / PREDICTION_DIR / MANIFEST_NAME)
    assert by_dir.name == PREDICTION_DIR
    x = torch.rand(1, 3, 20, 20)
    assert torch.allclose(by_dir.predict(x), by_manifest.predict(x))


def test_manifest_lists_multiple_shards(models_dir):
    manifest = json.loads((models_dir / TRANSFER_DIR / MANIFEST_NAME).read_text())
    assert manifest["format"] == "torchscript"
    assert len(manifest["weights"]) >= 2
    for name in manifest["weights"]:
        assert (models_dir / TRANSFER_DIR / name).exists()


def test_predict_records_no_autograd_history(models_dir):
    model = load_model(models_dir / PREDICTION_DIR)
    out = model.predict(torch.rand(1, 3, 16, 16))
    assert not out.requires_grad
    assert out.grad_fn is None


def test_load_models_returns_prediction_then_transfer(models_dir):
    prediction, transfer = asyncio.run(load_models(models_dir))
    assert prediction.name == PREDICTION_DIR
    assert transfer.name == TRANSFER_DIR


def test_missing_manifest_raises(tmp_path):
    with pytest.raises(ModelLoadError, match="Missing model manifest"):
        load_model(tmp_path)


def test_malformed_manifest_raises(tmp_path):
    (tmp_path / MANIFEST_NAME).write_text("{not json")
    with pytest.raises(ModelLoadError, match="Malformed"):
        load_model(tmp_path)


def test_unsupported_format_raises(tmp_path):
    (tmp_path / MANIFEST_NAME).write_text(json.dumps({"format": "graph-model", "graph": "x"}))
    with pytest.raises(ModelLoadError, match="Unsupported model format"):
        load_model(tmp_path)


def test_missing_shard_raises(models_dir, tmp_path):
    copy = tmp_path / TRANSFER_DIR
    shutil.copytree(models_dir / TRANSFER_DIR, copy)
    manifest = json.loads((copy / MANIFEST_NAME).read_text())
    (copy / manifest["weights"][0]).unlink()
    with pytest.raises(ModelLoadError, match="Missing weight shard"):
        load_model(copy)


def test_incomplete_shards_raise(models_dir, tmp_path):
    copy = tmp_path / TRANSFER_DIR
    shutil.copytree(models_dir / TRANSFER_DIR, copy)
    manifest = json.loads((copy / MANIFEST_NAME).read_text())
    manifest["weights"] = manifest["weights"][:1]
    (copy / MANIFEST_NAME).write_text(json.dumps(manifest))
    with pytest.raises(ModelLoadError, match="do not match"):
        load_model(copy)


def test_load_models_fails_if_either_model_fails(models_dir, tmp_path):
    shutil.copytree(models_dir / PREDICTION_DIR, tmp_path / PREDICTION_DIR)
    with pytest.raises(ModelLoadError):
        asyncio.run(load_models(tmp_path))
