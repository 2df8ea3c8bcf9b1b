"""Shared fixtures for ccusage-monitor tests."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from ccusage_monitor.config import Config, IndexConfig, MonitorConfig, PathsConfig, load_pricing_file
from ccusage_monitor.models.limits import default_limits_config


def iso(moment: datetime) -> str:
    """Claude Code style UTC timestamp."""
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def user_record(
    session_id: str,
    when: datetime,
    text: Optional[str] = "hello",
    cwd: Optional[str] = "/work/alpha",
    content: Any = None,
) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "type": "user",
        "timestamp": iso(when),
        "sessionId": session_id,
        "message": {"role": "user", "content": content if content is not None else text},
    }
    if cwd is not None:
        record["cwd"] = cwd
    return record


def assistant_record(
    session_id: str,
    when: datetime,
    model: str = "claude-sonnet-4-5-20250929",
    input_tokens: int = 100,
    output_tokens: int = 50,
    cache_write: int = 0,
    cache_read: int = 0,
    cost: Optional[float] = None,
    cwd: Optional[str] = "/work/alpha",
) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "type": "assistant",
        "timestamp": iso(when),
        "sessionId": session_id,
        "message": {
            "role": "assistant",
            "model": model,
            "content": [{"type": "text", "text": "ok"}],
            "usage": {
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "cache_creation_input_tokens": cache_write,
                "cache_read_input_tokens": cache_read,
            },
        },
    }
    if cost is not None:
        record["costUSD"] = cost
    if cwd is not None:
        record["cwd"] = cwd
    return record


class LogWriter:
    """Writes Claude Code style JSONL logs under a projects root."""

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def path(self, project: str, session_id: str) -> Path:
        directory = self.root / project
        directory.mkdir(parents=True, exist_ok=True)
        return directory / f"{session_id}.jsonl"

    def append(self, path: Path, records: List[Dict[str, Any]]) -> Path:
        with open(path, "a", encoding="utf-8") as f:
            for record in records:
                f.write(json.dumps(record) + "\n")
        return path

    def append_raw(self, path: Path, text: str) -> Path:
        with open(path, "a", encoding="utf-8") as f:
            f.write(text)
        return path

    def write(self, path: Path, records: List[Dict[str, Any]]) -> Path:
        path.write_text("", encoding="utf-8")
        return self.append(path, records)


@pytest.fixture
def logs(tmp_path) -> LogWriter:
    return LogWriter(tmp_path / "projects")


@pytest.fixture
def pricing_data():
    return load_pricing_file()


@pytest.fixture
def limits():
    return default_limits_config()


@pytest.fixture
def config(logs) -> Config:
    return Config(
        paths=PathsConfig(claude_data_dirs=[str(logs.root)]),
        monitor=MonitorConfig(),
        index=IndexConfig(),
    )
