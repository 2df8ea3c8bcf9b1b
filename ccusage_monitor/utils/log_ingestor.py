"""Incremental JSONL log ingestion for ccusage-monitor.

Reads Claude Code conversation logs from byte offsets recorded on the
previous pass. Only complete newline-terminated lines are consumed; a
trailing partial line stays on disk and is read again on the next pass.

A scan never moves the recorded offsets itself. The caller stores the
events first and then hands the result to ``commit``, so a pass whose
events could not be stored is read again in full.
"""

import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple, Union

from pydantic import BaseModel, Field, ValidationError

from ..config import ModelPricing
from ..models.session import ConversationEvent
from ..models.usage import IngestStats
from .claude_code_processor import CONVERSATION_TYPES, ClaudeCodeProcessor, LogRecord

logger = logging.getLogger(__name__)


class FileCursor(BaseModel):
    """Read position for one log file."""

    path: str
    file_seq: int
    inode: Optional[int] = None
    offset: int = Field(default=0, ge=0)
    pending_bytes: int = Field(default=0, ge=0)
    last_cwd: Optional[str] = None
    malformed_lines: int = Field(default=0, description="Malformed lines before offset")
    ignored_records: int = 0


class ScanStats(BaseModel):
    """Counters from one ingestion pass."""

    files_scanned: int = 0
    files_failed: int = 0
    files_reset: int = 0
    files_removed: int = 0
    events_read: int = 0
    malformed_lines: int = 0
    ignored_records: int = 0
    pending_bytes: int = 0


class ScanResult(BaseModel):
    """Outcome of one ingestion pass, not yet committed."""

    events: List[ConversationEvent] = Field(default_factory=list)
    reset_files: List[str] = Field(
        default_factory=list,
        description="Files truncated or replaced since the last pass; re-read from 0",
    )
    removed_files: List[str] = Field(
        default_factory=list, description="Tracked files no longer found under the roots"
    )
    failed_files: List[str] = Field(default_factory=list)
    cursors: Dict[str, FileCursor] = Field(
        default_factory=dict, description="Read positions after this pass"
    )
    next_file_seq: int = 0
    stats: ScanStats = Field(default_factory=ScanStats)

    @property
    def dropped_files(self) -> List[str]:
        """Files whose previously indexed events are no longer valid."""
        return self.reset_files + self.removed_files


class LogIngestor:
    """Discovers and incrementally parses JSONL logs under a set of roots."""

    def __init__(
        self,
        roots: Sequence[Union[str, Path]],
        pricing_data: Optional[Dict[str, ModelPricing]] = None,
        offsets: Optional[Dict[str, int]] = None,
        read_retries: int = 1,
    ):
        """Initialize log ingestor.

        Args:
            roots: Directories searched recursively for *.jsonl files
            pricing_data: Model pricing for lines that report no cost
            offsets: Previously recorded byte offsets (path -> offset) to resume from
            read_retries: Extra attempts for a file whose read fails mid-pass
        """
        self.roots = [Path(root).expanduser() for root in roots]
        self.pricing_data = pricing_data or {}
        self.read_retries = read_retries
        self._seed_offsets: Dict[str, int] = dict(offsets or {})
        self._cursors: Dict[str, FileCursor] = {}
        self._failed: Set[str] = set()
        self._next_seq = 0

    def discover_files(self) -> List[Path]:
        """Find all JSONL files under the roots in a deterministic order.

        Missing or unreadable roots contribute nothing.
        """
        files: List[Path] = []
        for root in self.roots:
            if not root.is_dir():
                logger.debug("Log root %s does not exist, skipping", root)
                continue
            try:
                found = sorted(root.glob("**/*.jsonl"))
            except OSError as e:
                logger.warning("Could not list %s: %s", root, e)
                continue
            files.extend(path for path in found if path.is_file())
        return files

    def offsets(self) -> Dict[str, int]:
        """Committed read offsets (path -> byte offset of the next unread line)."""
        return {path: cursor.offset for path, cursor in self._cursors.items()}

    def state(self) -> IngestStats:
        """Totals over every tracked file as of the last committed pass."""
        cursors = self._cursors.values()
        return IngestStats(
            files_tracked=len(self._cursors),
            files_failed=len(self._failed),
            malformed_lines=sum(c.malformed_lines for c in cursors),
            ignored_records=sum(c.ignored_records for c in cursors),
            pending_bytes=sum(c.pending_bytes for c in cursors),
        )

    def reset(self) -> None:
        """Forget all read positions so the next pass re-reads everything."""
        self._cursors.clear()
        self._seed_offsets.clear()
        self._failed.clear()
        self._next_seq = 0

    def _cursor_for(self, path: Path, result: ScanResult) -> FileCursor:
        key = str(path)
        cursor = self._cursors.get(key)
        if cursor is not None:
            return cursor.model_copy()
        cursor = FileCursor(
            path=key,
            file_seq=result.next_file_seq,
            offset=self._seed_offsets.get(key, 0),
        )
        result.next_file_seq += 1
        return cursor

    @staticmethod
    def _read_new_bytes(path: Path, cursor: FileCursor) -> Tuple[bytes, int, bool, int]:
        """Read bytes appended since the cursor position.

        Returns:
            (data, start_offset, was_reset, inode)
        """
        with open(path, "rb") as f:
            st = os.fstat(f.fileno())
            start = cursor.offset
            was_reset = cursor.inode is not None and (
                st.st_ino != cursor.inode or st.st_size < start
            )
            if was_reset or st.st_size < start:
                start = 0
            if st.st_size <= start:
                return b"", start, was_reset, st.st_ino
            f.seek(start)
            data = f.read(st.st_size - start)
        return data, start, was_reset, st.st_ino

    def scan(self) -> ScanResult:
        """Run one incremental pass over all log files.

        Recorded offsets are left untouched until ``commit`` is called
        with the result.

        Returns:
            ScanResult with the new events in file order
        """
        result = ScanResult(next_file_seq=self._next_seq)
        stats = result.stats

        discovered = self.discover_files()
        present = {str(path) for path in discovered}
        result.removed_files = sorted(key for key in self._cursors if key not in present)
        stats.files_removed = len(result.removed_files)
        for key in result.removed_files:
            logger.info("%s is gone, dropping its events", key)

        for path in discovered:
            cursor = self._cursor_for(path, result)
            result.cursors[cursor.path] = cursor
            stats.files_scanned += 1

            read: Optional[Tuple[bytes, int, bool, int]] = None
            for attempt in range(self.read_retries + 1):
                try:
                    read = self._read_new_bytes(path, cursor)
                    break
                except OSError as e:
                    logger.debug("Read of %s failed (attempt %d): %s", path, attempt + 1, e)

            if read is None:
                stats.files_failed += 1
                result.failed_files.append(cursor.path)
                logger.warning("Skipping %s this pass after repeated read errors", path)
                continue

            data, start, was_reset, inode = read
            if was_reset:
                logger.info("%s was truncated or replaced, re-reading from start", path)
                result.reset_files.append(cursor.path)
                stats.files_reset += 1
                cursor.last_cwd = None
                cursor.malformed_lines = 0
                cursor.ignored_records = 0

            consumed = self._parse_chunk(data, start, cursor, result)
            cursor.offset = start + consumed
            cursor.pending_bytes = len(data) - consumed
            cursor.inode = inode
            stats.pending_bytes += cursor.pending_bytes

        stats.events_read = len(result.events)
        return result

    def commit(self, result: ScanResult) -> None:
        """Adopt the read positions of a scan whose events have been stored."""
        for key in result.removed_files:
            self._cursors.pop(key, None)
        for key, cursor in result.cursors.items():
            self._cursors[key] = cursor
            self._seed_offsets.pop(key, None)
        self._failed = set(result.failed_files)
        self._next_seq = result.next_file_seq

    def _parse_chunk(
        self, data: bytes, start: int, cursor: FileCursor, result: ScanResult
    ) -> int:
        """Parse the complete lines of a chunk.

        Returns:
            Number of bytes consumed (up to and including the last newline)
        """
        last_newline = data.rfind(b"\n")
        if last_newline < 0:
            return 0

        complete = data[: last_newline + 1]
        line_offset = start
        for raw_line in complete.split(b"\n")[:-1]:
            line_start = line_offset
            line_offset += len(raw_line) + 1

            if not raw_line.strip():
                continue

            event = self._parse_line(raw_line, line_start, cursor, result.stats)
            if event is not None:
                result.events.append(event)

        return len(complete)

    def _parse_line(
        self, raw_line: bytes, line_start: int, cursor: FileCursor, stats: ScanStats
    ) -> Optional[ConversationEvent]:
        try:
            raw = json.loads(raw_line)
        except ValueError:
            stats.malformed_lines += 1
            cursor.malformed_lines += 1
            logger.debug("Malformed JSON at %s:%d", cursor.path, line_start)
            return None

        if not isinstance(raw, dict):
            stats.malformed_lines += 1
            cursor.malformed_lines += 1
            return None

        fallback_cwd = cursor.last_cwd
        if isinstance(raw.get("cwd"), str) and raw["cwd"]:
            cursor.last_cwd = raw["cwd"]

        if raw.get("type") not in CONVERSATION_TYPES:
            stats.ignored_records += 1
            cursor.ignored_records += 1
            return None

        try:
            record = LogRecord.model_validate(raw)
            event = ClaudeCodeProcessor.map_to_event(
                record,
                source_path=cursor.path,
                file_seq=cursor.file_seq,
                byte_offset=line_start,
                pricing_data=self.pricing_data,
                fallback_cwd=fallback_cwd,
            )
        except ValidationError as e:
            stats.malformed_lines += 1
            cursor.malformed_lines += 1
            logger.debug(
                "Invalid record at %s:%d: %d validation errors",
                cursor.path,
                line_start,
                e.error_count(),
            )
            return None

        if event is None:
            stats.ignored_records += 1
            cursor.ignored_records += 1
        return event
