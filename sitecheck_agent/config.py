from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv


# Load environment variables from the repo root .env (so API keys work in local dev)
_HERE = Path(__file__).resolve()
_AGENT_ROOT = _HERE.parents[1]
load_dotenv(_AGENT_ROOT / ".env", override=False)


LOOKUP_MODE = os.getenv("SITECHECK_LOOKUP_MODE", "simulated").strip().lower()
CONTENT_TIMEOUT_S = float(os.getenv("SITECHECK_CONTENT_TIMEOUT_S", "5.0"))
LOG_LEVEL = os.getenv("SITECHECK_LOG_LEVEL", "INFO").strip().upper()

SAFE_BROWSING_API_KEY = os.getenv("SAFE_BROWSING_API_KEY") or None
VIRUSTOTAL_API_KEY = os.getenv("VIRUSTOTAL_API_KEY") or None

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 SiteSafetyChecker/1.0"
)


def cors_allow_origins() -> list[str]:
    raw = os.getenv("SITECHECK_CORS_ORIGINS", "").strip()
    if not raw:
        return ["http://localhost:3000"]
    return [o.strip() for o in raw.split(",") if o.strip()]
