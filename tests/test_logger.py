import json
from decimal import Decimal
from pathlib import Path

from onecard_simulator.logger import append_log_event, print_structured_stdout


def test_append_log_event_stdout_pretty_prints_json(capsys) -> None:
    append_log_event(path=None, event={"z": 1, "a": {"b": 2}}, echo_stdout=False)

    output = capsys.readouterr().out
    assert "\n" in output
    assert '  "a"' in output
    payload = json.loads(output)
    assert payload["a"]["b"] == 2
    assert payload["z"] == 1


def test_append_log_event_file_stays_compact_json_line(tmp_path: Path, capsys) -> None:
    log_path = tmp_path / "nested" / "run.log"
    append_log_event(path=log_path, event={"b": 2, "a": 1}, echo_stdout=False)

    assert log_path.read_text(encoding="utf-8") == '{"a":1,"b":2}\n'
    assert capsys.readouterr().out == ""


def test_append_log_event_serializes_amounts_as_cents(tmp_path: Path) -> None:
    log_path = tmp_path / "run.log"
    append_log_event(path=log_path, event={"amount": Decimal("7.5"), "path": tmp_path}, echo_stdout=False)

    payload = json.loads(log_path.read_text(encoding="utf-8"))
    assert payload == {"amount": "7.50", "path": str(tmp_path)}


def test_append_log_event_echoes_when_requested(tmp_path: Path, capsys) -> None:
    append_log_event(path=tmp_path / "run.log", event={"x": 1}, echo_stdout=True)

    assert json.loads(capsys.readouterr().out) == {"x": 1}


def test_print_structured_stdout_passes_plain_text_through(capsys) -> None:
    print_structured_stdout("plain line [not markup]")

    assert "plain line [not markup]" in capsys.readouterr().out
