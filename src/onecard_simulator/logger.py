from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path
from typing import Any

from rich.console import Console

_STDOUT_CONSOLE = Console()


def print_structured_stdout(value: dict[str, Any] | list[Any] | str) -> None:
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            _STDOUT_CONSOLE.print(value, markup=False, highlight=False)
            return
    else:
        parsed = value

    _STDOUT_CONSOLE.print_json(json=_dumps(parsed, indent=None))


def append_log_event(path: Path | None, event: dict[str, Any], echo_stdout: bool = False) -> None:
    line = _dumps(event, indent=None, separators=(",", ":"))

    if path is not None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(f"{line}\n")

    if path is None or echo_stdout:
        print_structured_stdout(event)


def _dumps(value: Any, indent: int | None, separators: tuple[str, str] | None = None) -> str:
    return json.dumps(
        value,
        ensure_ascii=True,
        indent=indent,
        separators=separators,
        sort_keys=True,
        default=_json_default,
    )


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if isinstance(value, Path):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
