#!/usr/bin/env python3
"""
Check whether OPENROUTER_API_KEY is present and accepted by OpenRouter's key endpoint.
Prints only non-sensitive status lines:
 - MISSING (no env var)
 - VALID (200 OK)
 - INVALID (<status code>)
 - ERROR (<message>)
"""
import os
import sys

import httpx
from dotenv import load_dotenv

load_dotenv(override=True)

KEY = os.getenv("OPENROUTER_API_KEY")
BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1").rstrip("/")
if not KEY:
    print("MISSING")
    sys.exit(0)

headers = {"Authorization": f"Bearer {KEY}"}

try:
    with httpx.Client(timeout=10.0) as client:
        r = client.get(f"{BASE_URL}/key", headers=headers)
        if r.status_code == 200:
            print("VALID")
            sys.exit(0)
        elif r.status_code == 401:
            print("INVALID: 401 Unauthorized")
            sys.exit(1)
        else:
            print(f"INVALID: {r.status_code}")
            sys.exit(1)
except httpx.HTTPError as e:
    print("ERROR:", str(e))
    sys.exit(3)
