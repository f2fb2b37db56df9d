#!/usr/bin/env python3
"""
End-to-end check against a running server (dev mode, SMTP unset): register a throwaway user,
verify it with the returned dev OTP, send one chat message and confirm the thread shows up
in the chat list. Prints PASS/FAIL and the assistant reply.
"""
import os
import sys
import uuid

import httpx

API_BASE = os.getenv("API_BASE", "http://127.0.0.1:5000")

username = f"e2e_{uuid.uuid4().hex[:8]}"

try:
    with httpx.Client(timeout=30.0) as c:
        r = c.post(f"{API_BASE}/api/auth/register", json={
            "username": username, "email": f"{username}@example.com", "password": "e2e-secret",
        })
        r.raise_for_status()
        otp = r.json().get("dev_otp")
        if not otp:
            print("FAIL: no dev_otp in register response (is SMTP configured?)")
            sys.exit(2)

        r = c.post(f"{API_BASE}/api/auth/verify-email", json={"username": username, "otp": otp})
        r.raise_for_status()
        headers = {"Authorization": f"Bearer {r.json()['token']}"}

        r = c.post(f"{API_BASE}/api/chat", json={"message": "I'm feeling good today"}, headers=headers)
        r.raise_for_status()
        data = r.json()
        reply = data.get("response", "")
        chat_id = data.get("chatId")
        if not reply:
            print("FAIL: empty reply")
            sys.exit(1)

        r = c.get(f"{API_BASE}/api/chats", headers=headers)
        r.raise_for_status()
        chats = {ch["chatId"]: ch for ch in r.json().get("chats", [])}
        if chat_id not in chats or chats[chat_id]["messageCount"] != 2:
            print("FAIL: chat list does not show the new thread ->", chats)
            sys.exit(1)

        print("PASS:", reply)
        sys.exit(0)
except httpx.HTTPError as e:
    print("ERROR:", e)
    sys.exit(3)
