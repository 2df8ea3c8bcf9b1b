"""Session resolution for ccusage-monitor.

Folds conversation events into per-session aggregates. Sums are
order-independent and every snapshot field (model, context, todos,
directory) is taken from the greatest-keyed event carrying it, so folding
events incrementally gives the same sessions as replaying them all at once.
"""

from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from ..config import ModelPricing
from ..models.session import ActiveSession, ConversationEvent, Session
from ..utils.claude_code_processor import context_capacity, get_model_display_name


def context_remaining_percent(
    context_tokens: int, model_id: Optional[str], pricing_data: Dict[str, ModelPricing]
) -> float:
    """Percentage of the model's context window still free (clamped at 0)."""
    capacity = context_capacity(model_id, pricing_data)
    remaining = 100.0 * (1.0 - context_tokens / capacity)
    return max(0.0, min(100.0, remaining))


class SessionResolver:
    """Maintains the session-id -> Session map."""

    def __init__(self, pricing_data: Optional[Dict[str, ModelPricing]] = None):
        self.pricing_data = pricing_data or {}
        self.sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self.sessions)

    def get(self, session_id: str) -> Optional[Session]:
        return self.sessions.get(session_id)

    def fold(self, events: Iterable[ConversationEvent]) -> None:
        """Fold a batch of events into the session map."""
        for event in sorted(events, key=lambda e: e.order_key):
            self._apply(event)

    def rebuild(self, events: Iterable[ConversationEvent]) -> None:
        """Discard all sessions and replay every event from scratch."""
        self.sessions = {}
        self.fold(events)

    def _apply(self, event: ConversationEvent) -> None:
        key = event.order_key
        session = self.sessions.get(event.session_id)
        if session is None:
            session = Session(
                session_id=event.session_id,
                first_activity=event.timestamp,
                last_activity=event.timestamp,
            )
            self.sessions[event.session_id] = session
        else:
            if event.timestamp < session.first_activity:
                session.first_activity = event.timestamp
            if event.timestamp > session.last_activity:
                session.last_activity = event.timestamp

        if event.counts_as_message:
            session.message_count += 1
        session.tokens.add(event.tokens)
        session.cost_usd += event.cost_usd

        if event.directory and (
            session.directory_key is None or key > session.directory_key
        ):
            session.directory = event.directory
            session.directory_key = key

        if event.model and (session.model_key is None or key > session.model_key):
            session.model = event.model
            session.model_key = key

        if event.context_tokens is not None and (
            session.context_key is None or key > session.context_key
        ):
            session.context_remaining_percent = context_remaining_percent(
                event.context_tokens, event.model, self.pricing_data
            )
            session.context_key = key

        if event.todo_count is not None and (
            session.todo_key is None or key > session.todo_key
        ):
            session.todo_count = event.todo_count
            session.todo_key = key

    def active(self, now: datetime, hours: int = 24) -> List[Session]:
        """Sessions with activity in the last ``hours``, most recent first."""
        cutoff = now - timedelta(hours=hours)
        recent = [s for s in self.sessions.values() if s.last_activity >= cutoff]
        recent.sort(key=lambda s: (s.last_activity, s.session_id), reverse=True)
        return recent

    @staticmethod
    def to_active_session(session: Session) -> ActiveSession:
        """Build the display view of a session."""
        return ActiveSession(
            session_id=session.session_id,
            project=session.project_name,
            directory=session.directory,
            first_activity=session.first_activity,
            last_activity=session.last_activity,
            duration_minutes=session.duration_minutes,
            message_count=session.message_count,
            total_tokens=session.tokens.total,
            cost_usd=session.cost_usd,
            model=session.model,
            model_display_name=(
                get_model_display_name(session.model) if session.model else None
            ),
            context_remaining_percent=round(session.context_remaining_percent, 1),
            todo_count=session.todo_count,
        )
