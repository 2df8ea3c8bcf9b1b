"""Claude Code log processor for ccusage-monitor.

Handles validation of Claude Code JSONL records and their mapping to
ConversationEvents, plus the model catalog, display names and pricing.
"""

import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config import ModelPricing
from ..models.session import (
    MAX_EVENT_COST_USD,
    MAX_EVENT_TOKENS,
    ConversationEvent,
    TokenUsage,
)

DEFAULT_CONTEXT_WINDOW = 200_000

# Known models in display order (normalized id, display name)
MODEL_CATALOG: List[Tuple[str, str]] = [
    ("claude-opus-4.5", "Opus 4.5"),
    ("claude-opus-4.1", "Opus 4.1"),
    ("claude-opus-4", "Opus 4"),
    ("claude-sonnet-4.5", "Sonnet 4.5"),
    ("claude-sonnet-4", "Sonnet 4"),
    ("claude-3-7-sonnet", "Sonnet 3.7"),
    ("claude-3-5-sonnet", "Sonnet 3.5"),
    ("claude-haiku-4.5", "Haiku 4.5"),
    ("claude-3-5-haiku", "Haiku 3.5"),
]

_CATALOG_RANK = {model_id: rank for rank, (model_id, _) in enumerate(MODEL_CATALOG)}
_CATALOG_NAMES = dict(MODEL_CATALOG)

MODEL_FAMILIES = ("opus", "sonnet", "haiku")

TODO_TOOL_NAME = "TodoWrite"

# Matches the DECIMAL(18, 8) cost column of the usage index
COST_QUANTUM = Decimal("0.00000001")


def normalize_claude_model_name(model_id: str) -> str:
    """Normalize Claude Code model name for catalog and pricing lookup.

    Handles formats like: claude-opus-4-5-20251101 -> claude-opus-4.5

    Args:
        model_id: Raw model ID from Claude Code

    Returns:
        Normalized model name
    """
    model_id = model_id.lower()

    # Strip date suffixes like -20250514, -20251101
    model_id = re.sub(r"-\d{8}$", "", model_id)

    # Normalize version separators: claude-opus-4-5 -> claude-opus-4.5
    model_id = re.sub(
        r"claude-(opus|sonnet|haiku)-(\d+)-(\d+)", r"claude-\1-\2.\3", model_id
    )

    return model_id


def model_family(model_id: str) -> Optional[str]:
    """Get the model family (opus, sonnet, haiku) if recognisable."""
    model_lower = model_id.lower()
    for family in MODEL_FAMILIES:
        if family in model_lower:
            return family
    return None


def catalog_rank(model_id: str) -> Optional[int]:
    """Position of a model in the known-model catalog, None if unknown."""
    return _CATALOG_RANK.get(normalize_claude_model_name(model_id))


def get_model_display_name(model_id: str) -> str:
    """Get a short display name like 'Opus 4.5' for a raw model id."""
    normalized = normalize_claude_model_name(model_id)
    if normalized in _CATALOG_NAMES:
        return _CATALOG_NAMES[normalized]
    family = model_family(normalized)
    if family:
        return family.capitalize()
    return model_id


def find_pricing(
    model_id: str, pricing_data: Dict[str, ModelPricing]
) -> Optional[ModelPricing]:
    """Find pricing for a model: exact normalized match, then family, then sonnet."""
    normalized = normalize_claude_model_name(model_id)
    if normalized in pricing_data:
        return pricing_data[normalized]
    family = model_family(normalized)
    if family and family in pricing_data:
        return pricing_data[family]
    return pricing_data.get("sonnet")


def calculate_cost(
    model_id: str, tokens: TokenUsage, pricing_data: Dict[str, ModelPricing]
) -> Decimal:
    """Calculate cost in USD for a turn from per-million-token pricing."""
    pricing = find_pricing(model_id, pricing_data)
    if pricing is None:
        return Decimal("0")

    million = Decimal("1000000")
    cost = Decimal("0")
    cost += (Decimal(tokens.input) / million) * pricing.input
    cost += (Decimal(tokens.output) / million) * pricing.output
    cost += (Decimal(tokens.cache_write) / million) * pricing.cache_write
    cost += (Decimal(tokens.cache_read) / million) * pricing.cache_read
    return cost


def context_capacity(
    model_id: Optional[str], pricing_data: Dict[str, ModelPricing]
) -> int:
    """Context window size in tokens for a model."""
    if model_id:
        pricing = find_pricing(model_id, pricing_data)
        if pricing is not None and pricing.context_window > 0:
            return pricing.context_window
    return DEFAULT_CONTEXT_WINDOW


class RecordUsage(BaseModel):
    """Token usage block of an assistant message."""

    model_config = ConfigDict(extra="ignore")

    input_tokens: Optional[int] = Field(default=None, ge=0, le=MAX_EVENT_TOKENS)
    output_tokens: Optional[int] = Field(default=None, ge=0, le=MAX_EVENT_TOKENS)
    cache_creation_input_tokens: Optional[int] = Field(default=None, ge=0, le=MAX_EVENT_TOKENS)
    cache_read_input_tokens: Optional[int] = Field(default=None, ge=0, le=MAX_EVENT_TOKENS)

    def to_tokens(self) -> TokenUsage:
        return TokenUsage(
            input=self.input_tokens or 0,
            output=self.output_tokens or 0,
            cache_write=self.cache_creation_input_tokens or 0,
            cache_read=self.cache_read_input_tokens or 0,
        )


class RecordMessage(BaseModel):
    """Message payload of a conversation record."""

    model_config = ConfigDict(extra="ignore")

    role: Optional[str] = None
    model: Optional[str] = None
    content: Any = None
    usage: Optional[RecordUsage] = None


class LogRecord(BaseModel):
    """Validated user/assistant line of a Claude Code JSONL log.

    Required fields are checked; unrecognized fields are ignored.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str
    timestamp: datetime
    session_id: str = Field(alias="sessionId", min_length=1)
    cwd: Optional[str] = None
    message: Optional[RecordMessage] = None
    cost_usd: Optional[Decimal] = Field(
        default=None, alias="costUSD", ge=0, le=MAX_EVENT_COST_USD
    )
    tool_use_result: Any = Field(default=None, alias="toolUseResult")
    todos: Any = None

    @field_validator("timestamp")
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        """Normalize to UTC; naive timestamps are taken as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


CONVERSATION_TYPES = ("user", "assistant")


def count_pending_todos(todos: Any) -> Optional[int]:
    """Count todos not yet completed in a todo list snapshot."""
    if not isinstance(todos, list):
        return None
    return sum(
        1
        for todo in todos
        if not (isinstance(todo, dict) and todo.get("status") == "completed")
    )


class ClaudeCodeProcessor:
    """Maps Claude Code JSONL records to conversation events."""

    @staticmethod
    def is_user_prompt(content: Any) -> bool:
        """Check whether user message content is a real prompt.

        Plain strings are prompts; block lists count only when they hold a
        text block, so tool_result-only lines are excluded.
        """
        if isinstance(content, str):
            return bool(content.strip())
        if isinstance(content, list):
            return any(
                isinstance(block, dict) and block.get("type") == "text"
                for block in content
            )
        return False

    @staticmethod
    def extract_todo_count(record: LogRecord) -> Optional[int]:
        """Get the pending-todo count from whichever todo snapshot the line carries."""
        message = record.message
        if message is not None and isinstance(message.content, list):
            for block in reversed(message.content):
                if (
                    isinstance(block, dict)
                    and block.get("type") == "tool_use"
                    and block.get("name") == TODO_TOOL_NAME
                ):
                    tool_input = block.get("input")
                    if not isinstance(tool_input, dict):
                        continue
                    count = count_pending_todos(tool_input.get("todos"))
                    if count is not None:
                        return count

        result = record.tool_use_result
        if isinstance(result, dict) and "newTodos" in result:
            count = count_pending_todos(result.get("newTodos"))
            if count is not None:
                return count

        if record.todos is not None:
            return count_pending_todos(record.todos)

        return None

    @staticmethod
    def map_to_event(
        record: LogRecord,
        source_path: str,
        file_seq: int,
        byte_offset: int,
        pricing_data: Dict[str, ModelPricing],
        fallback_cwd: Optional[str] = None,
    ) -> Optional[ConversationEvent]:
        """Map a validated record to a ConversationEvent.

        Args:
            record: Validated log record
            source_path: File the record was read from
            file_seq: Discovery order of that file
            byte_offset: Offset of the line start within the file
            pricing_data: Model pricing used when the line reports no cost
            fallback_cwd: Last working directory seen in the same file

        Returns:
            ConversationEvent, or None for assistant lines without usage
        """
        directory = record.cwd or fallback_cwd
        todo_count = ClaudeCodeProcessor.extract_todo_count(record)
        message = record.message

        if record.type == "assistant":
            if message is None or message.usage is None:
                return None
            model_id = message.model or "unknown"
            tokens = message.usage.to_tokens()
            if record.cost_usd is not None:
                cost = record.cost_usd
            else:
                cost = calculate_cost(model_id, tokens, pricing_data)
            cost = cost.quantize(COST_QUANTUM)

            return ConversationEvent(
                timestamp=record.timestamp,
                session_id=record.session_id,
                directory=directory,
                role="assistant",
                model=model_id,
                tokens=tokens,
                cost_usd=cost,
                todo_count=todo_count,
                context_tokens=tokens.input + tokens.cache_read + tokens.cache_write,
                source_path=source_path,
                file_seq=file_seq,
                byte_offset=byte_offset,
            )

        content = message.content if message is not None else None
        return ConversationEvent(
            timestamp=record.timestamp,
            session_id=record.session_id,
            directory=directory,
            role="user",
            is_prompt=ClaudeCodeProcessor.is_user_prompt(content),
            todo_count=todo_count,
            source_path=source_path,
            file_seq=file_seq,
            byte_offset=byte_offset,
        )
