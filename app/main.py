# app/main.py
from __future__ import annotations
import os
from dotenv import load_dotenv

# Load .env before the app modules below read their os.getenv() settings at import time.
load_dotenv(override=True)

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from jose import jwt, JWTError  # python-jose dependency  # type: ignore
from passlib.context import CryptContext
from pydantic import BaseModel
from starlette.responses import JSONResponse

from app import tools as wellbeing_tools
from app.db import init_db, get_store
from app.errors import DuplicateKeyError, NotFoundError, StorageError
from app.models import ChatId, Username
from app.services import email_service, llm
from app.services.otp_store import (
    PURPOSE_RESET,
    PURPOSE_VERIFICATION,
    OtpError,
    OtpStore,
    PendingOtp,
    get_otp_store,
)
from app.storage import CsvStore
from app.utils.ids import new_chat_id, new_record_id, now_iso

logging.basicConfig(level=logging.INFO)

app = FastAPI(title="Mental Health AI", version="1.0.0")
app.state.otp_store = OtpStore(ttl_seconds=int(os.getenv("OTP_EXP_MIN", "10")) * 60)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StorageError)
def _storage_error_handler(request: Request, exc: StorageError):
    logging.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Storage failure"})


# --- JWT settings ---
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALGO = os.getenv("JWT_ALGO", "HS256")
JWT_EXP_MIN = int(os.getenv("JWT_EXP_MIN", str(60 * 24 * 7)))


def create_access_token(user: Dict[str, str], minutes: int = JWT_EXP_MIN) -> str:
    payload = {
        "sub": user["username"],
        "email": user.get("email", ""),
        "exp": int((datetime.now(timezone.utc) + timedelta(minutes=minutes)).timestamp()),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGO)


def get_current_username(request: Request) -> Username:
    auth = request.headers.get("Authorization", "")
    token = None
    if auth.lower().startswith("bearer "):
        token = auth.split(" ", 1)[1].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Access token required")
    try:
        data = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGO])
    except JWTError:
        raise HTTPException(status_code=403, detail="Invalid or expired token")
    username = data.get("sub")
    if not username:
        raise HTTPException(status_code=403, detail="Invalid or expired token")
    return Username(username)


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _hash_password(pw: str) -> str:
    return pwd_context.hash(pw)


def _verify_password(pw: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(pw, hashed)
    except (ValueError, TypeError):
        # unrecognised or empty hash in users.csv
        return False


def _public_user(user: Dict[str, str]) -> Dict[str, str]:
    return {"username": user["username"], "email": user["email"], "name": user.get("name", "")}


USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]+$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

OTP_ERRORS = {
    "missing": "Invalid or expired OTP",
    "expired": "OTP has expired. Please request a new one.",
    "mismatch": "Invalid OTP",
}


def _deliver_otp(store: CsvStore, otps: OtpStore, key: str, email: str, pending: PendingOtp,
                 ok_message: str, fail_message: str, discard_on_failure: bool = True) -> Dict[str, Any]:
    if email_service.send_otp_email(store, email, pending.code, pending.purpose, key):
        return {"success": True, "message": ok_message}
    if not email_service.email_configured():
        # Dev mode: no SMTP configured, hand the code back so the flow can be completed locally.
        logging.info("Dev %s OTP for %s: %s", pending.purpose, key, pending.code)
        return {"success": True, "message": f"{ok_message} (email not configured; dev mode)", "dev_otp": pending.code}
    if discard_on_failure:
        otps.discard(key)
    raise HTTPException(status_code=500, detail=fail_message)


# -------- Pydantic request models --------
class RegisterIn(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None

class VerifyEmailIn(BaseModel):
    username: Optional[str] = None
    otp: Optional[str] = None

class ResendOtpIn(BaseModel):
    type: Optional[str] = None  # "verification" | "reset"
    username: Optional[str] = None
    email: Optional[str] = None

class LoginIn(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None

class ForgotPasswordIn(BaseModel):
    email: Optional[str] = None

class ResetPasswordIn(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    otp: Optional[str] = None
    newPassword: Optional[str] = None

class ChatIn(BaseModel):
    message: Optional[str] = None
    chatId: Optional[str] = None

class PublicChatIn(BaseModel):
    message: Optional[str] = None
    history: Optional[List[Any]] = None

class MoodIn(BaseModel):
    mood: Optional[Union[int, str]] = None
    note: Optional[str] = None
    timestamp: Optional[str] = None

class JournalIn(BaseModel):
    content: Optional[str] = None
    timestamp: Optional[str] = None


# -------- Auth: registration with email OTP --------
@app.post("/api/auth/register")
def auth_register(payload: RegisterIn, store: CsvStore = Depends(get_store), otps: OtpStore = Depends(get_otp_store)):
    username = (payload.username or "").strip()
    email = (payload.email or "").strip().lower()
    password = payload.password or ""
    if not username or not email or not password:
        raise HTTPException(status_code=400, detail="Username, email, and password are required")
    if len(username) < 3:
        raise HTTPException(status_code=400, detail="Username must be at least 3 characters")
    if not USERNAME_RE.match(username):
        raise HTTPException(status_code=400, detail="Username can only contain letters, numbers, and underscores")
    if not EMAIL_RE.match(email):
        raise HTTPException(status_code=400, detail="Valid email required")
    if len(password) < 6:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters")

    if store.get_user_by_username(username):
        raise HTTPException(status_code=400, detail="Username already taken")
    if store.get_user_by_email(email):
        raise HTTPException(status_code=400, detail="Email already registered")

    pending = otps.issue(username, PURPOSE_VERIFICATION, {
        "username": username,
        "email": email,
        "password": _hash_password(password),
        "name": (payload.name or "").strip() or username,
    })
    return _deliver_otp(store, otps, username, email, pending,
                        "Verification OTP sent to your email", "Failed to send verification email")


@app.post("/api/auth/verify-email", status_code=201)
def auth_verify_email(payload: VerifyEmailIn, store: CsvStore = Depends(get_store), otps: OtpStore = Depends(get_otp_store)):
    username = (payload.username or "").strip()
    otp = (payload.otp or "").strip()
    if not username or not otp:
        raise HTTPException(status_code=400, detail="Username and OTP are required")
    try:
        pending = otps.verify(username, PURPOSE_VERIFICATION, otp)
    except OtpError as e:
        raise HTTPException(status_code=400, detail=OTP_ERRORS[e.reason])

    data = pending.payload
    try:
        user = store.create_user({
            "username": data["username"],
            "email": data["email"],
            "password": data["password"],
            "name": data.get("name", ""),
            "emailVerified": "true",
            "createdAt": now_iso(),
        })
    except DuplicateKeyError as e:
        otps.discard(username)
        raise HTTPException(status_code=400, detail="Username already exists" if e.field == "username" else "Email already exists")
    otps.discard(username)
    return {"success": True, "token": create_access_token(user), "user": _public_user(user)}


@app.post("/api/auth/resend-otp")
def auth_resend_otp(payload: ResendOtpIn, store: CsvStore = Depends(get_store), otps: OtpStore = Depends(get_otp_store)):
    kind = (payload.type or "").strip()
    if not kind:
        raise HTTPException(status_code=400, detail="Type is required")

    if kind == PURPOSE_VERIFICATION:
        username = (payload.username or "").strip()
        if not username:
            raise HTTPException(status_code=400, detail="Username is required")
        try:
            pending = otps.refresh(username, PURPOSE_VERIFICATION)
        except OtpError:
            raise HTTPException(status_code=400, detail="No pending registration found")
        return _deliver_otp(store, otps, username, pending.payload["email"], pending,
                            "OTP resent to your email", "Failed to send OTP email", discard_on_failure=False)

    if kind == PURPOSE_RESET:
        email = (payload.email or "").strip().lower()
        if not email:
            raise HTTPException(status_code=400, detail="Email is required")
        user = store.get_user_by_email(email)
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
        pending = otps.issue(user["username"], PURPOSE_RESET)
        return _deliver_otp(store, otps, user["username"], email, pending,
                            "Password reset OTP sent to your email", "Failed to send OTP email", discard_on_failure=False)

    raise HTTPException(status_code=400, detail="Type must be 'verification' or 'reset'")


# -------- Auth: login (JWT) --------
@app.post("/api/auth/login")
def auth_login(payload: LoginIn, store: CsvStore = Depends(get_store)):
    password = payload.password or ""
    username = (payload.username or "").strip()
    email = (payload.email or "").strip()
    if not password:
        raise HTTPException(status_code=400, detail="Password is required")
    if not username and not email:
        raise HTTPException(status_code=400, detail="Username or email is required")

    user = store.get_user_by_username(username) if username else store.get_user_by_email(email)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if user.get("emailVerified") != "true":
        return JSONResponse(status_code=403, content={
            "detail": "Email not verified. Please verify your email first.",
            "requiresVerification": True,
        })
    if not _verify_password(password, user.get("password", "")):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    return {
        "success": True,
        "token": create_access_token(user),
        "user": _public_user(user),
        "history": store.history_counts(Username(user["username"])),
    }


# -------- Auth: password reset --------
@app.post("/api/auth/forgot-password")
def auth_forgot_password(payload: ForgotPasswordIn, store: CsvStore = Depends(get_store), otps: OtpStore = Depends(get_otp_store)):
    email = (payload.email or "").strip().lower()
    if not email:
        raise HTTPException(status_code=400, detail="Email is required")
    user = store.get_user_by_email(email)
    if not user:
        # same answer whether or not the account exists
        return {"success": True, "message": "If the email exists, an OTP has been sent"}
    pending = otps.issue(user["username"], PURPOSE_RESET)
    return _deliver_otp(store, otps, user["username"], email, pending,
                        "Password reset OTP sent to your email", "Failed to send password reset email")


@app.post("/api/auth/reset-password")
def auth_reset_password(payload: ResetPasswordIn, store: CsvStore = Depends(get_store), otps: OtpStore = Depends(get_otp_store)):
    otp = (payload.otp or "").strip()
    new_password = payload.newPassword or ""
    username = (payload.username or "").strip()
    email = (payload.email or "").strip()
    if not otp or not new_password:
        raise HTTPException(status_code=400, detail="OTP and new password are required")
    if not username and not email:
        raise HTTPException(status_code=400, detail="Username or email is required")
    if len(new_password) < 6:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters")

    user = store.get_user_by_username(username) if username else store.get_user_by_email(email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    try:
        otps.verify(user["username"], PURPOSE_RESET, otp)
    except OtpError as e:
        raise HTTPException(status_code=400, detail=OTP_ERRORS[e.reason])

    try:
        store.update_user(user["username"], {"password": _hash_password(new_password)})
    except NotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    otps.discard(user["username"])
    return {"success": True, "message": "Password reset successfully"}


@app.get("/api/auth/verify")
def auth_verify_token(username: Username = Depends(get_current_username), store: CsvStore = Depends(get_store)):
    user = store.get_user_by_username(username)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "user": _public_user(user), "history": store.history_counts(username)}


# -------- Chats --------
@app.get("/api/chats")
def list_chats(username: Username = Depends(get_current_username), store: CsvStore = Depends(get_store)):
    return {"chats": store.get_chat_list(username)}


@app.post("/api/chats/{chat_id}/delete")
def delete_chat(chat_id: str, username: Username = Depends(get_current_username), store: CsvStore = Depends(get_store)):
    # soft delete: messages stay in conversations.csv
    store.add_deleted_chat(username, ChatId(chat_id))
    return {"success": True}


@app.get("/api/chat/{chat_id}")
def get_chat_messages(chat_id: str, username: Username = Depends(get_current_username), store: CsvStore = Depends(get_store)):
    if store.is_chat_deleted(username, ChatId(chat_id)):
        raise HTTPException(status_code=410, detail="Chat deleted")
    return {"messages": store.get_conversations(username, ChatId(chat_id))}


@app.post("/api/chat")
def chat(payload: ChatIn, username: Username = Depends(get_current_username), store: CsvStore = Depends(get_store)):
    message = payload.message or ""
    if not message.strip():
        raise HTTPException(status_code=400, detail="Message is required")
    chat_id = ChatId(payload.chatId or new_chat_id())

    history = [
        {"role": c["role"], "content": c["content"]}
        for c in store.get_conversations(username, chat_id)
        if c.get("role") in ("user", "assistant")
    ]
    store.add_conversation(username, {
        "id": new_record_id(), "chatId": chat_id, "role": "user", "content": message, "timestamp": now_iso(),
    })
    history.append({"role": "user", "content": message})

    preview = (message[:120] + '...') if len(message) > 120 else message
    logging.info("/api/chat user=%s chat=%s preview=%s", username, chat_id, preview)
    response = llm.generate_reply(history)

    store.add_conversation(username, {
        "id": new_record_id(), "chatId": chat_id, "role": "assistant", "content": response, "timestamp": now_iso(),
    })
    return {"response": response, "chatId": chat_id, "username": username}


@app.post("/api/public-chat")
def public_chat(payload: PublicChatIn):
    """Guest chat: no account, nothing is stored."""
    message = (payload.message or "").strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")
    history = [
        {"role": h["role"], "content": h["content"]}
        for h in (payload.history or [])
        if isinstance(h, dict) and h.get("role") in ("user", "assistant") and isinstance(h.get("content"), str)
    ][-llm.HISTORY_WINDOW:]
    history.append({"role": "user", "content": message})
    return {"response": llm.generate_reply(history)}


# -------- Mood & journal --------
def _parse_mood(value: Union[int, str, None]) -> str:
    raw = str(value).strip() if value is not None else ""
    if not raw:
        raise HTTPException(status_code=400, detail="Mood is required")
    try:
        score = int(raw)
    except ValueError:
        score = 0
    if not 1 <= score <= 5:
        raise HTTPException(status_code=400, detail="Mood must be a whole number from 1 to 5")
    return str(score)


@app.post("/api/mood")
def add_mood(payload: MoodIn, username: Username = Depends(get_current_username), store: CsvStore = Depends(get_store)):
    entry = store.add_mood_entry(username, {
        "id": new_record_id(),
        "mood": _parse_mood(payload.mood),
        "note": payload.note or "",
        "timestamp": payload.timestamp or now_iso(),
    })
    return {"success": True, "entry": entry}


@app.get("/api/mood")
def list_moods(username: Username = Depends(get_current_username), store: CsvStore = Depends(get_store)):
    return {"entries": store.get_mood_entries(username)}


@app.post("/api/journal")
def add_journal(payload: JournalIn, username: Username = Depends(get_current_username), store: CsvStore = Depends(get_store)):
    if not (payload.content or "").strip():
        raise HTTPException(status_code=400, detail="Journal content is required")
    entry = store.add_journal_entry(username, {
        "id": new_record_id(),
        "content": payload.content,
        "timestamp": payload.timestamp or now_iso(),
    })
    return {"success": True, "entry": entry}


@app.get("/api/journal")
def list_journal(username: Username = Depends(get_current_username), store: CsvStore = Depends(get_store)):
    return {"entries": store.get_journal_entries(username)}


# -------- Static info --------
@app.get("/api/resources")
def resources():
    return wellbeing_tools.crisis_resources()


@app.get("/api/health")
def health():
    return {"status": "ok", "timestamp": now_iso(), "using_llm": llm.llm_enabled()}


# -------- Startup --------
@app.on_event("startup")
def _startup():
    init_db()
    if llm.llm_enabled():
        logging.info("OpenRouter configured: using model %s", llm.OPENROUTER_MODEL)
    else:
        logging.info("OPENROUTER_API_KEY not set: using fallback responses.")
    if not email_service.email_configured():
        logging.info("SMTP not configured: OTP codes are returned in responses (dev mode).")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="127.0.0.1",
        port=int(os.getenv("PORT", "5000")),
        reload=True,
    )
