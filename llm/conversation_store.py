"""
Conversation memory for the Insurance Sales Assistant.

The ConversationStore protocol abstracts storage so the orchestrator can
work with the in-memory store below or a durable backend.
"""

import asyncio
import logging
from collections import deque
from contextlib import nullcontext
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_WINDOW = 20

USER = "user"
ASSISTANT = "assistant"


@dataclass(frozen=True)
class ConversationMessage:
    """A single conversation turn. Immutable once created."""
    role: str
    content: str
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self):
        if self.role not in (USER, ASSISTANT):
            raise ValueError(f"Unknown message role: {self.role}")

    def to_dict(self) -> Dict[str, str]:
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class CustomerProfile:
    """Partial customer profile accumulated across turns."""
    age: Optional[int] = None
    location: Optional[str] = None
    risk_tolerance: Optional[str] = None
    family_size: Optional[int] = None
    income_range: Optional[str] = None
    vehicle_type: Optional[str] = None
    insurance_interest: Optional[str] = None
    smoking_status: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    lead_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def merge(self, updates: Dict[str, Any]) -> None:
        """Merge field by field. Later values win; None never overwrites."""
        known = {f.name for f in fields(self)} - {"extra"}
        for key, value in updates.items():
            if value is None:
                continue
            if key in known:
                setattr(self, key, value)
            else:
                self.extra[key] = value

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@runtime_checkable
class ConversationStore(Protocol):
    """Protocol for conversation persistence."""

    async def append(self, user_id: str, message: ConversationMessage) -> None:
        """Append one message to the user's history."""
        ...

    async def append_pair(
        self,
        user_id: str,
        user_message: ConversationMessage,
        assistant_message: ConversationMessage,
    ) -> None:
        """Append a user turn and its reply."""
        ...

    async def history(self, user_id: str) -> List[ConversationMessage]:
        """Get message history, oldest first."""
        ...

    async def get_profile(self, user_id: str) -> CustomerProfile:
        """Get a copy of the customer profile."""
        ...

    async def merge_profile(self, user_id: str, updates: Dict[str, Any]) -> CustomerProfile:
        """Merge inferred fields into the customer profile."""
        ...

    async def get_state(self, user_id: str) -> Optional[str]:
        """Get the conversation state name."""
        ...

    async def set_state(self, user_id: str, state: str) -> None:
        """Set the conversation state name."""
        ...

    async def clear(self, user_id: str) -> None:
        """Clear conversation history, profile and state."""
        ...


class InMemoryConversationStore:
    """
    Process-wide conversation store keyed by user id.

    History is a bounded deque: once the window is full the oldest message
    is evicted. Mutations for one user are serialised by a per-user lock;
    different users never contend.
    """

    def __init__(self, max_messages: int = DEFAULT_HISTORY_WINDOW):
        if max_messages < 1:
            raise ValueError("max_messages must be positive")
        self.max_messages = max_messages
        self._histories: Dict[str, Deque[ConversationMessage]] = {}
        self._profiles: Dict[str, CustomerProfile] = {}
        self._states: Dict[str, str] = {}
        self._created: Dict[str, datetime] = {}
        self._last_activity: Dict[str, datetime] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def append(self, user_id: str, message: ConversationMessage) -> None:
        async with self._lock(user_id):
            self._append_locked(user_id, message)

    async def append_pair(
        self,
        user_id: str,
        user_message: ConversationMessage,
        assistant_message: ConversationMessage,
    ) -> None:
        async with self._lock(user_id):
            self._append_locked(user_id, user_message)
            self._append_locked(user_id, assistant_message)

    async def history(self, user_id: str) -> List[ConversationMessage]:
        async with self._read_lock(user_id):
            return list(self._histories.get(user_id, ()))

    async def get_profile(self, user_id: str) -> CustomerProfile:
        async with self._read_lock(user_id):
            profile = self._profiles.get(user_id)
            if profile is None:
                return CustomerProfile()
            return CustomerProfile(**{**profile.to_dict(), "extra": dict(profile.extra)})

    async def merge_profile(self, user_id: str, updates: Dict[str, Any]) -> CustomerProfile:
        async with self._lock(user_id):
            profile = self._profiles.setdefault(user_id, CustomerProfile())
            profile.merge(updates)
            return CustomerProfile(**{**profile.to_dict(), "extra": dict(profile.extra)})

    async def get_state(self, user_id: str) -> Optional[str]:
        async with self._read_lock(user_id):
            return self._states.get(user_id)

    async def set_state(self, user_id: str, state: str) -> None:
        async with self._lock(user_id):
            self._states[user_id] = state

    async def clear(self, user_id: str) -> None:
        async with self._read_lock(user_id):
            self._histories.pop(user_id, None)
            self._profiles.pop(user_id, None)
            self._states.pop(user_id, None)
            self._created.pop(user_id, None)
            self._last_activity.pop(user_id, None)
        self._locks.pop(user_id, None)
        logger.info(f"Cleared conversation for {user_id}")

    async def context(self, user_id: str) -> Dict[str, Any]:
        """Summary of a conversation: depth, stage and last activity."""
        async with self._read_lock(user_id):
            messages = self._histories.get(user_id, ())
            last = self._last_activity.get(user_id)
            created = self._created.get(user_id)
            return {
                "user_id": user_id,
                "message_count": len(messages),
                "exchange_count": len(messages) // 2,
                "state": self._states.get(user_id),
                "created_at": created.isoformat() if created else None,
                "last_activity": last.isoformat() if last else None,
            }

    def stats(self) -> Dict[str, int]:
        """Counts across all conversations."""
        return {
            "total_conversations": len(self._histories),
            "total_messages": sum(len(h) for h in self._histories.values()),
            "profiles": len(self._profiles),
        }

    def _lock(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    def _read_lock(self, user_id: str):
        # A user with no lock has never been written, so there is nothing to guard
        return self._locks.get(user_id) or nullcontext()

    def _append_locked(self, user_id: str, message: ConversationMessage) -> None:
        history = self._histories.get(user_id)
        if history is None:
            history = deque(maxlen=self.max_messages)
            self._histories[user_id] = history
            self._created[user_id] = message.timestamp
        history.append(message)
        self._last_activity[user_id] = message.timestamp
