import json
import os
import subprocess
import sys
import time
from pathlib import Path

import pytest

try:
    import jsonschema  # type: ignore
except Exception:  # pragma: no cover
    jsonschema = None


def run_cli(args, timeout=15):
    return subprocess.run(
        [sys.executable, "-m", "tailstream.cli", *args], capture_output=True, timeout=timeout
    )


def make_log(tmp_path: Path) -> Path:
    p = tmp_path / "app.log"
    p.write_bytes(b"2025-10-04T00:00:00Z INFO startup complete\n2025-10-04T00:00:01Z ERROR failed to connect\n")
    return p


def test_no_follow_copies_file_and_exits(tmp_path):
    log = make_log(tmp_path)
    proc = run_cli(["tail", str(log), "--no-follow", "--poll", "--no-color"])
    assert proc.returncode == 0, proc.stderr
    assert proc.stdout == log.read_bytes()


def test_begin_at_offset(tmp_path):
    log = make_log(tmp_path)
    proc = run_cli(["tail", str(log), "--no-follow", "--poll", "--begin-at", "21"])
    assert proc.returncode == 0, proc.stderr
    assert proc.stdout == log.read_bytes()[21:]


def test_notices_go_to_stderr_unless_quiet(tmp_path):
    log = make_log(tmp_path)
    loud = run_cli(["tail", str(log), "--no-follow", "--poll", "--no-color"])
    assert b"[tailstream] end" in loud.stderr
    quiet = run_cli(["tail", str(log), "--no-follow", "--poll", "--quiet"])
    assert quiet.stderr == b""


def test_missing_file_exits_2(tmp_path):
    proc = run_cli(["tail", str(tmp_path / "missing.log"), "--no-follow"])
    assert proc.returncode == 2
    assert b"open_failed" in proc.stderr


@pytest.mark.parametrize("value", ["start", "-3"])
def test_invalid_begin_at_is_a_usage_error(tmp_path, value):
    log = make_log(tmp_path)
    proc = run_cli(["tail", str(log), f"--begin-at={value}"])
    assert proc.returncode == 2
    assert b"--begin-at" in proc.stderr


def test_no_subcommand_prints_help():
    proc = run_cli([])
    assert proc.returncode == 0
    assert b"usage:" in proc.stdout


def test_version_subcommand():
    proc = run_cli(["version"])
    assert proc.returncode == 0
    assert proc.stdout.lower().startswith(b"tailstream ")


def test_events_jsonl_validates_against_schema(tmp_path):
    if jsonschema is None:
        pytest.skip("jsonschema not installed")
    log = make_log(tmp_path)
    jsonl = tmp_path / "events.jsonl"
    proc = subprocess.Popen(
        [
            sys.executable,
            "-m",
            "tailstream.cli",
            "tail",
            str(log),
            "--poll",
            "--poll-interval",
            "0.02",
            "--events-jsonl",
            str(jsonl),
            "--quiet",
        ],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )
    try:
        # wait until the initial read reached end of file
        deadline = time.time() + 5.0
        while time.time() < deadline:
            if jsonl.exists() and b'"eof"' in jsonl.read_bytes():
                break
            time.sleep(0.05)
        with log.open("ab") as fh:
            fh.write(b"2025-10-04T00:00:02Z WARN retrying\n")
        time.sleep(0.2)
        # shrinking the file ends the stream under the default truncate policy
        log.write_bytes(b"")
        out, err = proc.communicate(timeout=5)
    finally:
        if proc.poll() is None:
            proc.kill()
    assert proc.returncode == 0, err
    assert out.endswith(b"WARN retrying\n")

    schema_path = Path(__file__).parents[1] / "schemas" / "event.schema.json"
    schema = json.loads(schema_path.read_text(encoding="utf-8"))
    validator = jsonschema.Draft202012Validator(schema)  # type: ignore
    records = [json.loads(line) for line in jsonl.read_text(encoding="utf-8").splitlines() if line.strip()]
    assert records, "no events written"
    for obj in records:
        validator.validate(obj)
    names = [r["event"] for r in records]
    assert "truncate" in names
    assert names[-1] == "end" and records[-1]["reason"] == "truncated"
    assert all(os.path.isabs(r["path"]) for r in records)
