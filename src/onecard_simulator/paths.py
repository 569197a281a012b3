from __future__ import annotations

from pathlib import Path

CONFIG_FILE_NAMES = ("simulator.yml", "simulator.yaml")


def resolve_config_path(cli_value: Path | None, cwd: Path) -> Path:
    if cli_value is not None:
        return cli_value

    for name in CONFIG_FILE_NAMES:
        candidate = cwd / name
        if candidate.exists():
            return candidate
    return cwd / CONFIG_FILE_NAMES[0]
