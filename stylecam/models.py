"""Loading of the style-prediction and style-transfer graphs.

Each model lives in its own directory as a ``model.json`` manifest, a
TorchScript graph, and zero or more weight shards::

    models/style-prediction/model.json
    models/style-prediction/model.pt
    models/style-prediction/group1-shard1of2.pth
    models/style-prediction/group1-shard2of2.pth

Shards are partial state dicts. When present they are merged and loaded
strictly on top of the graph, so every parameter and buffer must be covered.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Tuple

import torch

from stylecam.errors import ModelLoadError

logger = logging.getLogger(__name__)

MANIFEST_NAME = "model.json"
PREDICTION_DIR = "style-prediction"
TRANSFER_DIR = "style-transfer"


@dataclass(frozen=True, eq=False)
class ModelHandle:
    """A loaded inference graph. ``predict`` never records autograd history."""

    name: str
    module: torch.jit.ScriptModule
    device: torch.device

    def predict(self, *inputs: torch.Tensor) -> torch.Tensor:
        with torch.inference_mode():
            out = self.module(*[x.to(self.device) for x in inputs])
        if isinstance(out, (tuple, list)):
            out = out[0]
        return out


def _read_manifest(manifest_path: Path) -> Dict:
    try:
        manifest = json.loads(manifest_path.read_text())
    except FileNotFoundError as e:
        raise ModelLoadError(f"Missing model manifest: {manifest_path}") from e
    except json.JSONDecodeError as e:
        raise ModelLoadError(f"Malformed model manifest {manifest_path}: {e}") from e

    if not isinstance(manifest, dict):
        raise ModelLoadError(f"Malformed model manifest {manifest_path}: expected an object")
    fmt = manifest.get("format", "torchscript")
    if fmt != "torchscript":
        raise ModelLoadError(f"Unsupported model format {fmt!r} in {manifest_path}")
    if not isinstance(manifest.get("graph"), str):
        raise ModelLoadError(f"Manifest {manifest_path} has no 'graph' entry")
    weights = manifest.get("weights", [])
    if not isinstance(weights, list) or not all(isinstance(w, str) for w in weights):
        raise ModelLoadError(f"Manifest {manifest_path} 'weights' must be a list of file names")
    return manifest


def _merge_shards(model_dir: Path, shards: List[str], device: torch.device) -> Dict[str, torch.Tensor]:
    merged: Dict[str, torch.Tensor] = {}
    for name in shards:
        shard_path = model_dir / name
        try:
            part = torch.load(shard_path, map_location=device)
        except FileNotFoundError as e:
            raise ModelLoadError(f"Missing weight shard: {shard_path}") from e
        except Exception as e:
            raise ModelLoadError(f"Could not read weight shard {shard_path}: {e}") from e
        if not isinstance(part, dict):
            raise ModelLoadError(f"Weight shard {shard_path} is not a state dict")
        overlap = merged.keys() & part.keys()
        if overlap:
            raise ModelLoadError(f"Weight shard {shard_path} repeats keys: {sorted(overlap)[:3]}")
        merged.update(part)
    return merged


def load_model(path: str | Path, device: str | torch.device = "cpu") -> ModelHandle:
    """Load a model from its directory (or directly from its manifest)."""
    path = Path(path)
    manifest_path = path / MANIFEST_NAME if path.is_dir() else path
    model_dir = manifest_path.parent
    device = torch.device(device)

    manifest = _read_manifest(manifest_path)
    graph_path = model_dir / manifest["graph"]
    try:
        module = torch.jit.load(str(graph_path), map_location=device)
    except Exception as e:
        raise ModelLoadError(f"Could not load graph {graph_path}: {e}") from e

    shards = manifest.get("weights", [])
    if shards:
        state = _merge_shards(model_dir, shards, device)
        try:
            module.load_state_dict(state, strict=True)
        except RuntimeError as e:
            raise ModelLoadError(f"Weight shards do not match graph {graph_path}: {e}") from e

    module.eval()
    return ModelHandle(name=model_dir.name, module=module, device=device)


async def load_models(
    models_dir: str | Path, device: str | torch.device = "cpu"
) -> Tuple[ModelHandle, ModelHandle]:
    """Load the prediction and transfer models; resolves once both are parsed."""
    models_dir = Path(models_dir)
    t0 = time.perf_counter()
    prediction, transfer = await asyncio.gather(
        asyncio.to_thread(load_model, models_dir / PREDICTION_DIR, device),
        asyncio.to_thread(load_model, models_dir / TRANSFER_DIR, device),
    )
    logger.info("Models loaded in %.2f seconds.", time.perf_counter() - t0)
    return prediction, transfer
