"""Run directories and artifact files written by the CLI."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import json
import re
import secrets
from pathlib import Path
from typing import Any

ROOT_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = ROOT_DIR / "data"


@dataclass(slots=True)
class RunPaths:
    """Directories belonging to one CLI invocation."""

    run_id: str
    command: str
    base_dir: Path
    command_dir: Path

    def artifact(self, filename: str) -> Path:
        path = self.command_dir / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        return path


def generate_run_id() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"{stamp}-{secrets.token_hex(2)}"


def prepare_run_directories(
    run_id: str, command: str, data_dir: Path = DATA_DIR
) -> RunPaths:
    base_dir = data_dir / run_id
    command_dir = base_dir / command
    command_dir.mkdir(parents=True, exist_ok=True)
    return RunPaths(
        run_id=run_id, command=command, base_dir=base_dir, command_dir=command_dir
    )


def write_json(path: Path, payload: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, ensure_ascii=False)
    return path


def message_filename(sequence: int, message_type: str) -> str:
    """``007_form_schema_extracted.json`` style names for streamed messages."""
    slug = re.sub(r"[^a-z0-9]+", "_", message_type.lower()).strip("_") or "message"
    return f"{sequence:03d}_{slug}.json"


def relative_artifact_path(path: Path) -> str:
    try:
        return str(path.resolve().relative_to(ROOT_DIR))
    except ValueError:
        return str(path.resolve())


__all__ = [
    "DATA_DIR",
    "RunPaths",
    "generate_run_id",
    "prepare_run_directories",
    "write_json",
    "message_filename",
    "relative_artifact_path",
]
