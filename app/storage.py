"""Flat-file record store.

Layout under the storage root::

    users.csv, emails.csv                 global tables
    <username>/conversations.csv          per-user tables
    <username>/moods.csv
    <username>/journals.csv
    <username>/deleted_chats.csv

Every operation loads the whole table, works on it in memory and, if it changed anything, writes
the whole table back. Read-modify-write cycles hold the table's file lock, so writers in the same
process are serialised; there is no locking across processes.
"""
from __future__ import annotations
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from app.errors import DuplicateKeyError, NotFoundError, StorageIOError
from app.models import (
    CONVERSATIONS, DEFAULT_CHAT_ID, DEFAULT_CHAT_TITLE, DELETED_CHATS, EMAILS, JOURNALS, MOODS,
    TITLE_MAX_CHARS, USERS, ChatId, ChatSummary, TableSchema, Username,
)
from app.utils.ids import now_iso
from app.utils.table_file import file_lock, read_all, write_all

logger = logging.getLogger(__name__)

Record = Dict[str, str]


def _conform(record: Mapping[str, Any], schema: TableSchema) -> Record:
    return {field: "" if record.get(field) is None else str(record.get(field)) for field in schema.header}


def _parse_timestamp(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class CsvStore:
    def __init__(self, root, strip: bool = True):
        self.root = Path(root)
        self.strip = strip
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(str(self.root), f"Cannot create storage root {self.root}: {e}") from e

    # ---------- paths ----------
    @property
    def users_path(self) -> Path:
        return self.root / USERS.filename

    @property
    def emails_path(self) -> Path:
        return self.root / EMAILS.filename

    def user_dir(self, username: Username) -> Path:
        name = str(username or "")
        if not name or name in (".", "..") or "/" in name or "\\" in name or "\x00" in name:
            raise ValueError(f"Invalid username for storage: {name!r}")
        return self.root / name

    def ensure_user_directory(self, username: Username) -> Path:
        path = self.user_dir(username)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(str(path), f"Cannot create user directory {path}: {e}") from e
        return path

    def user_table_path(self, username: Username, schema: TableSchema) -> Path:
        return self.user_dir(username) / schema.filename

    # ---------- table helpers ----------
    def _read(self, path: Path) -> List[Record]:
        return read_all(path, strip=self.strip)

    def _append(self, path: Path, schema: TableSchema, record: Mapping[str, Any]) -> Record:
        row = _conform(record, schema)
        with file_lock(path):
            rows = self._read(path)
            rows.append(row)
            write_all(path, rows, schema.header)
        return row

    def _read_user_table(self, username: Username, schema: TableSchema) -> List[Record]:
        return self._read(self.user_table_path(username, schema))

    def _append_user_table(self, username: Username, schema: TableSchema, record: Mapping[str, Any]) -> Record:
        self.ensure_user_directory(username)
        return self._append(self.user_table_path(username, schema), schema, record)

    # ---------- users ----------
    def get_users(self) -> List[Record]:
        return self._read(self.users_path)

    def get_user_by_username(self, username: str) -> Optional[Record]:
        for u in self.get_users():
            if u.get("username") == username:
                return u
        return None

    def get_user_by_email(self, email: str) -> Optional[Record]:
        wanted = (email or "").strip().lower()
        if not wanted:
            return None
        for u in self.get_users():
            if (u.get("email") or "").lower() == wanted:
                return u
        return None

    def create_user(self, record: Mapping[str, Any]) -> Record:
        username = Username(str(record.get("username") or ""))
        self.user_dir(username)
        user = _conform({**record, "email": str(record.get("email") or "").strip().lower()}, USERS)
        with file_lock(self.users_path):
            users = self._read(self.users_path)
            if any(u.get("username") == username for u in users):
                raise DuplicateKeyError("username", username)
            if any((u.get("email") or "").lower() == user["email"] for u in users):
                raise DuplicateKeyError("email", user["email"])
            users.append(user)
            write_all(self.users_path, users, USERS.header)
        self.ensure_user_directory(username)
        logger.info("Created user %s", username)
        return user

    def update_user(self, username: str, updates: Mapping[str, Any]) -> Record:
        changes = {k: v for k, v in updates.items() if k != "username"}
        if "email" in changes:
            changes["email"] = str(changes["email"] or "").strip().lower()
        with file_lock(self.users_path):
            users = self._read(self.users_path)
            index = next((i for i, u in enumerate(users) if u.get("username") == username), None)
            if index is None:
                raise NotFoundError(f"User not found: {username}")
            new_email = changes.get("email")
            if "email" in changes and any(
                i != index and (u.get("email") or "").lower() == new_email for i, u in enumerate(users)
            ):
                raise DuplicateKeyError("email", new_email)
            merged = _conform({**users[index], **changes}, USERS)
            users[index] = merged
            write_all(self.users_path, users, USERS.header)
        logger.info("Updated user %s fields=%s", username, sorted(changes))
        return merged

    # ---------- conversations ----------
    def get_conversations(self, username: Username, chat_id: Optional[ChatId] = None) -> List[Record]:
        rows = self._read_user_table(username, CONVERSATIONS)
        for row in rows:
            if not row.get("chatId"):
                row["chatId"] = DEFAULT_CHAT_ID
        if chat_id:
            return [r for r in rows if r["chatId"] == chat_id]
        return rows

    def add_conversation(self, username: Username, message: Mapping[str, Any]) -> Record:
        return self._append_user_table(username, CONVERSATIONS, message)

    def replace_conversations(self, username: Username, messages: Sequence[Mapping[str, Any]]) -> None:
        self.ensure_user_directory(username)
        path = self.user_table_path(username, CONVERSATIONS)
        with file_lock(path):
            write_all(path, [_conform(m, CONVERSATIONS) for m in messages], CONVERSATIONS.header)

    def get_chat_list(self, username: Username) -> List[ChatSummary]:
        conversations = self.get_conversations(username)
        deleted = {d.get("chatId") for d in self.get_deleted_chats(username)}

        threads: Dict[str, List[Record]] = {}
        for msg in conversations:
            threads.setdefault(msg["chatId"], []).append(msg)

        summaries: List[ChatSummary] = []
        for chat_id, messages in threads.items():
            if chat_id in deleted:
                continue
            first_user = next((m for m in messages if m.get("role") == "user"), None)
            title = (first_user.get("content") or "")[:TITLE_MAX_CHARS] if first_user else ""
            summaries.append({
                "chatId": chat_id,
                "title": title or DEFAULT_CHAT_TITLE,
                "lastMessage": messages[-1].get("timestamp") or "",
                "messageCount": len(messages),
            })

        def sort_key(summary: ChatSummary):
            ts = _parse_timestamp(summary["lastMessage"])
            return (1, 0.0) if ts is None else (0, -ts.timestamp())

        return sorted(summaries, key=sort_key)

    # ---------- deleted chats ----------
    def get_deleted_chats(self, username: Username) -> List[Record]:
        return self._read_user_table(username, DELETED_CHATS)

    def is_chat_deleted(self, username: Username, chat_id: ChatId) -> bool:
        return any(d.get("chatId") == chat_id for d in self.get_deleted_chats(username))

    def add_deleted_chat(self, username: Username, chat_id: ChatId) -> None:
        self.ensure_user_directory(username)
        path = self.user_table_path(username, DELETED_CHATS)
        with file_lock(path):
            rows = self._read(path)
            if any(d.get("chatId") == chat_id for d in rows):
                return
            rows.append({"chatId": chat_id, "deletedAt": now_iso()})
            write_all(path, rows, DELETED_CHATS.header)
        logger.info("Soft-deleted chat %s for %s", chat_id, username)

    # ---------- moods & journals ----------
    def get_mood_entries(self, username: Username) -> List[Record]:
        return self._read_user_table(username, MOODS)

    def add_mood_entry(self, username: Username, entry: Mapping[str, Any]) -> Record:
        return self._append_user_table(username, MOODS, entry)

    def get_journal_entries(self, username: Username) -> List[Record]:
        return self._read_user_table(username, JOURNALS)

    def add_journal_entry(self, username: Username, entry: Mapping[str, Any]) -> Record:
        return self._append_user_table(username, JOURNALS, entry)

    def history_counts(self, username: Username) -> Dict[str, int]:
        return {
            "conversations": len(self.get_conversations(username)),
            "moodEntries": len(self.get_mood_entries(username)),
            "journalEntries": len(self.get_journal_entries(username)),
        }

    # ---------- email log ----------
    def add_email(self, entry: Mapping[str, Any]) -> Record:
        return self._append(self.emails_path, EMAILS, entry)

    def get_emails(self) -> List[Record]:
        return self._read(self.emails_path)
