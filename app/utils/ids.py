import secrets, time, uuid
from datetime import datetime, timezone

OTP_DIGITS = 6


def now_iso() -> str:
    """UTC timestamp like 2024-01-01T09:30:00.123Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_record_id() -> str:
    return uuid.uuid4().hex


def new_chat_id() -> str:
    return f"chat_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


def generate_otp(digits: int = OTP_DIGITS) -> str:
    """Numeric one-time code; leading zeros are kept."""
    return "".join(secrets.choice("0123456789") for _ in range(digits))
