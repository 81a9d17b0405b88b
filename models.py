# backend/models.py

from datetime import datetime, timezone

from passlib.context import CryptContext
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    event,
)
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Session, relationship, validates

from db import Base  # absolute import

AI_PROVIDERS = ("openai", "claude", "gemini", "lmstudio")
THEMES = ("light", "dark", "system")
MESSAGE_ROLES = ("user", "assistant", "system")

DEFAULT_TITLE = "New Conversation"
DEFAULT_MODEL = "gpt-3.5-turbo"
TITLE_MAX_LENGTH = 200
AUTO_TITLE_LENGTH = 50

# ─── Password hashing ───────────────────────────────────────────────────────────
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def utcnow() -> datetime:
    # naive UTC, which is what SQLite hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_tags(tags) -> list:
    """Trim, lowercase and de-duplicate tags, keeping first-seen order."""
    seen = []
    for tag in tags or []:
        if not isinstance(tag, str):
            continue
        tag = tag.strip().lower()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(30), unique=True, index=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    default_ai_provider = Column(String, nullable=False, default="openai")
    theme = Column(String, nullable=False, default="light")
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # One-to-many: a user can have many conversations
    conversations = relationship(
        "Conversation", back_populates="owner", cascade="all, delete-orphan"
    )

    @validates("email")
    def _lower_email(self, key, value):
        return value.strip().lower()

    @validates("default_ai_provider")
    def _check_provider(self, key, value):
        if value not in AI_PROVIDERS:
            raise ValueError(f"Unknown AI provider: {value}")
        return value

    @validates("theme")
    def _check_theme(self, key, value):
        if value not in THEMES:
            raise ValueError(f"Unknown theme: {value}")
        return value

    def set_password(self, password: str) -> None:
        self.hashed_password = pwd_context.hash(password)

    def check_password(self, password: str) -> bool:
        if not self.hashed_password:
            return False
        return pwd_context.verify(password, self.hashed_password)

    def public_profile(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "preferences": {
                "default_ai_provider": self.default_ai_provider,
                "theme": self.theme,
            },
            "created_at": self.created_at,
        }


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(TITLE_MAX_LENGTH), nullable=False, default=DEFAULT_TITLE)
    ai_provider = Column(String, nullable=False, default="openai")
    model = Column(String, default=DEFAULT_MODEL)
    summary = Column(Text, nullable=False, default="")
    tags = Column(JSON, nullable=False, default=list)
    is_archived = Column(Boolean, nullable=False, default=False)
    last_message_at = Column(DateTime, default=utcnow, index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    owner = relationship("User", back_populates="conversations")
    messages = relationship(
        "ChatMessage",
        back_populates="conversation",
        order_by="ChatMessage.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )

    @validates("ai_provider")
    def _check_provider(self, key, value):
        if value not in AI_PROVIDERS:
            raise ValueError(f"Unknown AI provider: {value}")
        return value

    @validates("tags")
    def _normalize_tags(self, key, value):
        return normalize_tags(value)

    @validates("title")
    def _check_title(self, key, value):
        if value is not None and len(value) > TITLE_MAX_LENGTH:
            raise ValueError(f"Title cannot exceed {TITLE_MAX_LENGTH} characters")
        return value

    def add_message(self, role: str, content: str, metadata: dict = None) -> "ChatMessage":
        if role not in MESSAGE_ROLES:
            raise ValueError(f"Unknown message role: {role}")
        msg = ChatMessage(role=role, content=content, timestamp=utcnow(), meta=metadata)
        self.messages.append(msg)
        self.refresh_last_message_at()
        return msg

    def refresh_last_message_at(self) -> None:
        if self.messages:
            self.last_message_at = self.messages[-1].timestamp

    def auto_generate_title(self) -> None:
        """Derive the title from the first user message while it is still the default."""
        if self.title != DEFAULT_TITLE or not self.messages:
            return
        first = next((m for m in self.messages if m.role == "user"), None)
        if first is None:
            return
        title = first.content[:AUTO_TITLE_LENGTH]
        if len(first.content) > AUTO_TITLE_LENGTH:
            title += "..."
        self.title = title

    def merge_tags(self, suggested) -> None:
        merged = set(self.tags or []) | set(normalize_tags(suggested))
        self.tags = sorted(merged)

    def history(self) -> list:
        """The transcript in the provider-agnostic {role, content} shape."""
        return [{"role": m.role, "content": m.content} for m in self.messages]

    def get_stats(self) -> dict:
        first_at = self.messages[0].timestamp if self.messages else None
        duration = None
        if first_at is not None and self.last_message_at is not None:
            duration = (self.last_message_at - first_at).total_seconds()
        return {
            "message_count": len(self.messages),
            "user_messages": sum(1 for m in self.messages if m.role == "user"),
            "assistant_messages": sum(1 for m in self.messages if m.role == "assistant"),
            "first_message_at": first_at,
            "last_message_at": self.last_message_at,
            "duration_seconds": duration,
        }

    def to_dict(self, include_messages: bool = True) -> dict:
        data = {
            "id": self.id,
            "title": self.title,
            "ai_provider": self.ai_provider,
            "model": self.model,
            "summary": self.summary,
            "tags": list(self.tags or []),
            "is_archived": self.is_archived,
            "last_message_at": self.last_message_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if include_messages:
            data["messages"] = [m.to_dict() for m in self.messages]
        return data


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False)
    role = Column(String, nullable=False)    # "user", "assistant" or "system"
    content = Column(Text, nullable=False)
    timestamp = Column(DateTime, default=utcnow, nullable=False)
    meta = Column("metadata", JSON, nullable=True)  # {model, tokens, provider}

    conversation = relationship("Conversation", back_populates="messages")

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.meta:
            data["metadata"] = self.meta
        return data


# ─── Keep last_message_at in step with the transcript on every flush ───────────
@event.listens_for(Session, "before_flush")
def _sync_last_message_at(session, flush_context, instances):
    for obj in list(session.new) + list(session.dirty):
        if isinstance(obj, Conversation):
            obj.refresh_last_message_at()
