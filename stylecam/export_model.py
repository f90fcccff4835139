from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Dict, List

import torch

from stylecam.models import MANIFEST_NAME

GRAPH_NAME = "model.pt"


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description=(
            "Export a TorchScript model into the stylecam model layout: "
            "model.json manifest + graph + weight shards."
        )
    )
    p.add_argument("--module", type=str, required=True, help="TorchScript file (torch.jit.save output).")
    p.add_argument("--out", type=str, required=True, help="Output model directory, e.g. models/style-transfer.")
    p.add_argument(
        "--shard-mb",
        type=float,
        default=4.0,
        help="Maximum size of one weight shard in MB (0 keeps weights inside the graph only).",
    )
    return p


def _tensor_bytes(t: torch.Tensor) -> int:
    return t.numel() * t.element_size()


def split_state_dict(state: Dict[str, torch.Tensor], max_bytes: int) -> List[Dict[str, torch.Tensor]]:
    """Greedily pack tensors into shards of at most ``max_bytes`` (a single oversize tensor gets its own)."""
    shards: List[Dict[str, torch.Tensor]] = []
    current: Dict[str, torch.Tensor] = {}
    current_bytes = 0
    for key, tensor in state.items():
        size = _tensor_bytes(tensor)
        if current and current_bytes + size > max_bytes:
            shards.append(current)
            current, current_bytes = {}, 0
        current[key] = tensor.detach().cpu().clone()
        current_bytes += size
    if current:
        shards.append(current)
    return shards


def export_model(module: torch.jit.ScriptModule, out_dir: str | Path, shard_mb: float = 4.0) -> Path:
    """Write ``module`` to ``out_dir`` and return the manifest path."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    torch.jit.save(module, str(out_dir / GRAPH_NAME))

    weights: List[str] = []
    if shard_mb > 0:
        shards = split_state_dict(module.state_dict(), int(shard_mb * 1024 * 1024))
        for idx, shard in enumerate(shards, start=1):
            name = f"group1-shard{idx}of{len(shards)}.pth"
            torch.save(shard, out_dir / name)
            weights.append(name)

    manifest = {"format": "torchscript", "graph": GRAPH_NAME, "weights": weights}
    manifest_path = out_dir / MANIFEST_NAME
    manifest_path.write_text(json.dumps(manifest, indent=2))
    return manifest_path


def main() -> None:
    args = build_parser().parse_args()
    if args.shard_mb < 0:
        raise SystemExit("--shard-mb must be >= 0")

    module_path = Path(args.module)
    if not module_path.exists():
        raise SystemExit(f"Missing TorchScript file: {module_path}")
    module = torch.jit.load(str(module_path), map_location="cpu").eval()

    manifest_path = export_model(module, args.out, shard_mb=float(args.shard_mb))
    manifest = json.loads(manifest_path.read_text())
    total_mb = sum((manifest_path.parent / w).stat().st_size for w in manifest["weights"]) / (1024 * 1024)
    print(f"Saved: {manifest_path}  shards={len(manifest['weights'])} ({total_mb:.1f} MB)")


if __name__ == "__main__":
    main()
