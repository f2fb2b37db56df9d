from __future__ import annotations
from dataclasses import dataclass
from typing import NewType, Tuple, TypedDict

# Identifiers are plain strings on disk; the NewTypes keep usernames and chat ids apart in signatures.
Username = NewType("Username", str)
ChatId = NewType("ChatId", str)

# Messages recorded before chats were partitioned have no chatId column value.
DEFAULT_CHAT_ID = ChatId("default_chat")
DEFAULT_CHAT_TITLE = "New Chat"
TITLE_MAX_CHARS = 50


@dataclass(frozen=True)
class TableSchema:
    filename: str
    header: Tuple[str, ...]


# --- Global tables ---
USERS = TableSchema("users.csv", ("username", "email", "password", "name", "emailVerified", "createdAt"))
EMAILS = TableSchema("emails.csv", ("id", "to", "subject", "type", "otp", "sentAt", "username"))

# --- Per-user tables (live under <root>/<username>/) ---
CONVERSATIONS = TableSchema("conversations.csv", ("id", "chatId", "role", "content", "timestamp"))
MOODS = TableSchema("moods.csv", ("id", "mood", "note", "timestamp"))
JOURNALS = TableSchema("journals.csv", ("id", "content", "timestamp"))
DELETED_CHATS = TableSchema("deleted_chats.csv", ("chatId", "deletedAt"))


class UserRecord(TypedDict):
    username: str
    email: str
    password: str  # passlib hash, never the raw password
    name: str
    emailVerified: str  # "true" once the OTP was confirmed
    createdAt: str


class ConversationRecord(TypedDict):
    id: str
    chatId: str
    role: str  # "user" | "assistant"
    content: str
    timestamp: str


class DeletedChatRecord(TypedDict):
    chatId: str
    deletedAt: str


class MoodRecord(TypedDict):
    id: str
    mood: str  # "1".."5"
    note: str
    timestamp: str


class JournalRecord(TypedDict):
    id: str
    content: str
    timestamp: str


class EmailRecord(TypedDict):
    id: str
    to: str
    subject: str
    type: str  # "verification" | "reset"
    otp: str
    sentAt: str
    username: str


class ChatSummary(TypedDict):
    chatId: str
    title: str
    lastMessage: str
    messageCount: int
