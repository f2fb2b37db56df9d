from __future__ import annotations
import logging
import os
from typing import Dict, List

from openai import OpenAI, OpenAIError

from app.tools import fallback_response

logger = logging.getLogger(__name__)

OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
OPENROUTER_MODEL = os.getenv("OPENROUTER_MODEL", "openai/gpt-3.5-turbo")
OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
APP_URL = os.getenv("APP_URL", "http://localhost:3000")

HISTORY_WINDOW = 20

SYSTEM_PROMPT = (
    "You are Rabbit 🐰, a cheerful, positive, and humorous AI companion whose main goal is to make users happy "
    "and bring joy to their lives. Your personality is:\n"
    "- EXTREMELY POSITIVE and OPTIMISTIC - Always find the silver lining and focus on hope\n"
    "- HUMOROUS and PLAYFUL - Make appropriate jokes, puns, and light-hearted comments to lift spirits\n"
    "- WARM and COMFORTING - Like a caring friend who wants to see them smile\n"
    "- ENCOURAGING - Help users see their strengths and potential\n"
    "- UPLIFTING - When users express sadness, anxiety, or negative feelings, respond with gentle humor, "
    "positive reframing, hope and encouragement, and light-hearted distractions\n\n"
    "IMPORTANT:\n"
    "- Keep responses light, positive, and hopeful\n"
    "- Never be preachy or dismissive of their feelings\n"
    "- Still acknowledge their emotions but help them see brighter possibilities\n"
    "- In serious crisis situations, provide resources but maintain a supportive, hopeful tone\n\n"
    "Your mission: Make users smile, laugh, and feel better! 🐰✨"
)

client = None
if OPENROUTER_API_KEY:
    client = OpenAI(
        api_key=OPENROUTER_API_KEY,
        base_url=OPENROUTER_BASE_URL,
        default_headers={"HTTP-Referer": APP_URL, "X-Title": "Mental Health AI"},
    )


def llm_enabled() -> bool:
    return client is not None


def generate_reply(history: List[Dict[str, str]]) -> str:
    """Reply to the last user turn in ``history`` (role/content dicts, oldest first).

    Falls back to a canned reply when no API key is set or the completion call fails.
    """
    last_user = next((m.get("content", "") for m in reversed(history) if m.get("role") == "user"), "")
    if client is None:
        return fallback_response(last_user)
    try:
        resp = client.chat.completions.create(
            model=OPENROUTER_MODEL,
            temperature=0.7,
            max_tokens=500,
            messages=[{"role": "system", "content": SYSTEM_PROMPT}, *history[-HISTORY_WINDOW:]],
        )
        content = (resp.choices[0].message.content or "").strip()
    except OpenAIError as e:
        logger.exception("OpenRouter completion failed: %s", e)
        return fallback_response(last_user)
    return content or fallback_response(last_user)
