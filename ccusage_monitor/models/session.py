"""Event and session data models for ccusage-monitor."""

from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field

# (timestamp, file_seq, source_path, byte_offset)
EventKey = Tuple[datetime, int, str, int]

# Largest values the usage index columns hold (BIGINT tokens, DECIMAL(18, 8) cost).
# Tokens are capped well below BIGINT so priced costs stay inside the cost column.
MAX_EVENT_TOKENS = 10**12
MAX_EVENT_COST_USD = Decimal("9999999999.99999999")


class TokenUsage(BaseModel):
    """Model for token usage data."""

    input: int = Field(default=0, ge=0)
    output: int = Field(default=0, ge=0)
    cache_write: int = Field(default=0, ge=0)
    cache_read: int = Field(default=0, ge=0)

    @computed_field
    @property
    def total(self) -> int:
        """Calculate total tokens."""
        return self.input + self.output + self.cache_write + self.cache_read

    def add(self, other: "TokenUsage") -> None:
        """Accumulate another usage record into this one."""
        self.input += other.input
        self.output += other.output
        self.cache_write += other.cache_write
        self.cache_read += other.cache_read


class ConversationEvent(BaseModel):
    """A single accepted line of a Claude Code conversation log.

    Events are created by the log ingestor and never mutated afterwards.
    """

    model_config = ConfigDict(frozen=True)

    # === Identification ===
    timestamp: datetime = Field(description="Timezone-aware event time")
    session_id: str
    directory: Optional[str] = Field(
        default=None, description="Project working directory (cwd)"
    )
    role: str = Field(description="Message role: user or assistant")
    is_prompt: bool = Field(
        default=False,
        description="User line with real text content (not only tool results)",
    )

    # === Model & usage (assistant lines) ===
    model: Optional[str] = Field(default=None, description="Raw model identifier")
    tokens: TokenUsage = Field(default_factory=TokenUsage)
    cost_usd: Decimal = Field(default=Decimal("0"), ge=0, le=MAX_EVENT_COST_USD)

    # === Snapshots ===
    todo_count: Optional[int] = Field(
        default=None, description="Pending todos in the latest todo snapshot on this line"
    )
    context_tokens: Optional[int] = Field(
        default=None, description="Context window tokens in use after this turn"
    )

    # === Source position ===
    source_path: str
    file_seq: int = Field(default=0, description="Discovery order of the source file")
    byte_offset: int = Field(default=0, ge=0)

    @property
    def order_key(self) -> EventKey:
        """Deterministic ordering key across files and reruns."""
        return (self.timestamp, self.file_seq, self.source_path, self.byte_offset)

    @property
    def counts_as_message(self) -> bool:
        """Assistant turns and real user prompts count as messages."""
        return self.role == "assistant" or self.is_prompt


class Session(BaseModel):
    """Aggregate state of one conversation session."""

    session_id: str
    directory: Optional[str] = None
    first_activity: datetime
    last_activity: datetime
    message_count: int = 0
    tokens: TokenUsage = Field(default_factory=TokenUsage)
    cost_usd: Decimal = Field(default=Decimal("0"))
    model: Optional[str] = None
    context_remaining_percent: float = 100.0
    todo_count: int = 0

    # Keys of the events that last set each snapshot field
    model_key: Optional[EventKey] = Field(default=None, exclude=True)
    context_key: Optional[EventKey] = Field(default=None, exclude=True)
    todo_key: Optional[EventKey] = Field(default=None, exclude=True)
    directory_key: Optional[EventKey] = Field(default=None, exclude=True)

    @computed_field
    @property
    def project_name(self) -> str:
        """Get project name from the working directory."""
        if not self.directory:
            return "Unknown"
        return Path(self.directory).name or self.directory

    @computed_field
    @property
    def duration_minutes(self) -> int:
        """Minutes between first and last activity."""
        delta = self.last_activity - self.first_activity
        return max(0, int(delta.total_seconds() // 60))


class ActiveSession(BaseModel):
    """Display view of a recently active session."""

    session_id: str
    project: str
    directory: Optional[str] = None
    first_activity: datetime
    last_activity: datetime
    duration_minutes: int
    message_count: int
    total_tokens: int
    cost_usd: Decimal
    model: Optional[str] = None
    model_display_name: Optional[str] = None
    context_remaining_percent: float
    todo_count: int
