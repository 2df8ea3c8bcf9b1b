"""Tests for Claude Code processor."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from ccusage_monitor.models.session import TokenUsage
from ccusage_monitor.utils.claude_code_processor import (
    ClaudeCodeProcessor,
    LogRecord,
    calculate_cost,
    catalog_rank,
    context_capacity,
    count_pending_todos,
    find_pricing,
    get_model_display_name,
    normalize_claude_model_name,
)

from conftest import assistant_record, user_record

NOW = datetime(2025, 3, 12, 15, 30, tzinfo=timezone.utc)


class TestNormalizeModelName:
    """Tests for model name normalization."""

    def test_claude_with_date_suffix(self):
        assert normalize_claude_model_name("claude-opus-4-5-20251101") == "claude-opus-4.5"
        assert normalize_claude_model_name("claude-sonnet-4-20250514") == "claude-sonnet-4"

    def test_claude_without_date(self):
        assert normalize_claude_model_name("claude-opus-4-5") == "claude-opus-4.5"
        assert normalize_claude_model_name("claude-haiku-4-5") == "claude-haiku-4.5"

    def test_legacy_names_unchanged(self):
        assert normalize_claude_model_name("claude-3-5-sonnet-20241022") == "claude-3-5-sonnet"

    def test_lowercase_conversion(self):
        assert normalize_claude_model_name("Claude-Opus-4-5") == "claude-opus-4.5"


class TestModelCatalog:
    """Tests for display names, catalog order and pricing lookup."""

    def test_display_names(self):
        assert get_model_display_name("claude-opus-4-5-20251101") == "Opus 4.5"
        assert get_model_display_name("claude-3-5-haiku-20241022") == "Haiku 3.5"
        assert get_model_display_name("claude-opus-9") == "Opus"
        assert get_model_display_name("mystery-model") == "mystery-model"

    def test_catalog_rank_orders_opus_first(self):
        assert catalog_rank("claude-opus-4-5-20251101") < catalog_rank("claude-sonnet-4-5")
        assert catalog_rank("claude-sonnet-4-5") < catalog_rank("claude-haiku-4-5")
        assert catalog_rank("mystery-model") is None

    def test_find_pricing_falls_back_to_family_then_sonnet(self, pricing_data):
        assert find_pricing("claude-opus-4-5-20251101", pricing_data) is pricing_data["claude-opus-4.5"]
        assert find_pricing("claude-opus-9", pricing_data) is pricing_data["opus"]
        assert find_pricing("mystery-model", pricing_data) is pricing_data["sonnet"]

    def test_calculate_cost(self, pricing_data):
        tokens = TokenUsage(input=1_000_000, output=1_000_000, cache_write=1_000_000, cache_read=1_000_000)
        cost = calculate_cost("claude-opus-4-5-20251101", tokens, pricing_data)
        assert cost == Decimal("5") + Decimal("25") + Decimal("6.25") + Decimal("0.5")

    def test_calculate_cost_without_pricing(self):
        assert calculate_cost("claude-opus-4-5", TokenUsage(input=10), {}) == Decimal("0")

    def test_context_capacity_default(self, pricing_data):
        assert context_capacity(None, pricing_data) == 200_000
        assert context_capacity("claude-sonnet-4-5", {}) == 200_000


class TestTodoCounting:
    """Tests for pending todo extraction."""

    def test_count_pending_todos(self):
        todos = [
            {"content": "a", "status": "completed"},
            {"content": "b", "status": "in_progress"},
            {"content": "c", "status": "pending"},
        ]
        assert count_pending_todos(todos) == 2
        assert count_pending_todos("not a list") is None

    def test_todowrite_tool_use(self):
        record = assistant_record("s1", NOW)
        record["message"]["content"].append(
            {
                "type": "tool_use",
                "name": "TodoWrite",
                "input": {"todos": [{"status": "pending"}, {"status": "completed"}]},
            }
        )
        parsed = LogRecord.model_validate(record)
        assert ClaudeCodeProcessor.extract_todo_count(parsed) == 1

    def test_tool_use_result_new_todos(self):
        record = user_record("s1", NOW, content=[{"type": "tool_result", "content": "ok"}])
        record["toolUseResult"] = {"newTodos": [{"status": "pending"}] * 3}
        parsed = LogRecord.model_validate(record)
        assert ClaudeCodeProcessor.extract_todo_count(parsed) == 3

    def test_no_todos(self):
        parsed = LogRecord.model_validate(user_record("s1", NOW))
        assert ClaudeCodeProcessor.extract_todo_count(parsed) is None


class TestClaudeCodeProcessor:
    """Tests for ClaudeCodeProcessor class."""

    def test_is_user_prompt(self):
        assert ClaudeCodeProcessor.is_user_prompt("fix the bug")
        assert not ClaudeCodeProcessor.is_user_prompt("   ")
        assert ClaudeCodeProcessor.is_user_prompt([{"type": "text", "text": "hi"}])
        assert not ClaudeCodeProcessor.is_user_prompt(
            [{"type": "tool_result", "tool_use_id": "x", "content": "done"}]
        )
        assert not ClaudeCodeProcessor.is_user_prompt(None)

    def test_map_assistant_event(self, pricing_data):
        record = LogRecord.model_validate(
            assistant_record(
                "s1", NOW, input_tokens=1000, output_tokens=200, cache_write=300, cache_read=4000
            )
        )
        event = ClaudeCodeProcessor.map_to_event(record, "/logs/a.jsonl", 0, 42, pricing_data)

        assert event.role == "assistant"
        assert event.session_id == "s1"
        assert event.directory == "/work/alpha"
        assert event.tokens.total == 5500
        assert event.context_tokens == 1000 + 4000 + 300
        assert event.byte_offset == 42
        assert event.cost_usd > 0
        assert event.cost_usd == event.cost_usd.quantize(Decimal("0.00000001"))

    def test_reported_cost_wins(self, pricing_data):
        record = LogRecord.model_validate(assistant_record("s1", NOW, cost=0.1234))
        event = ClaudeCodeProcessor.map_to_event(record, "/logs/a.jsonl", 0, 0, pricing_data)
        assert event.cost_usd == Decimal("0.12340000")

    def test_assistant_without_usage_is_skipped(self, pricing_data):
        raw = assistant_record("s1", NOW)
        del raw["message"]["usage"]
        record = LogRecord.model_validate(raw)
        assert ClaudeCodeProcessor.map_to_event(record, "/logs/a.jsonl", 0, 0, pricing_data) is None

    def test_user_event_inherits_cwd(self, pricing_data):
        record = LogRecord.model_validate(user_record("s1", NOW, cwd=None))
        event = ClaudeCodeProcessor.map_to_event(
            record, "/logs/a.jsonl", 0, 0, pricing_data, fallback_cwd="/work/beta"
        )
        assert event.role == "user"
        assert event.is_prompt
        assert event.directory == "/work/beta"
        assert event.model is None

    def test_naive_timestamp_is_utc(self):
        raw = user_record("s1", NOW)
        raw["timestamp"] = "2025-03-12T15:30:00"
        record = LogRecord.model_validate(raw)
        assert record.timestamp == NOW

    def test_offset_timestamp_is_normalized_to_utc(self):
        raw = user_record("s1", NOW)
        raw["timestamp"] = "2025-03-12T17:30:00+02:00"
        record = LogRecord.model_validate(raw)
        assert record.timestamp == NOW
        assert record.timestamp.tzinfo == timezone.utc

    def test_cost_beyond_index_range_is_invalid(self):
        with pytest.raises(ValueError):
            LogRecord.model_validate(assistant_record("s1", NOW, cost=1e12))

    def test_missing_session_id_is_invalid(self):
        raw = user_record("s1", NOW)
        del raw["sessionId"]
        with pytest.raises(ValueError):
            LogRecord.model_validate(raw)
