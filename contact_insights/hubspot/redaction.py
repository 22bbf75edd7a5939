from __future__ import annotations

import re
from typing import Any, List, Tuple

_REDACT_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r'("access_?token"\s*:\s*")[^"]+(")', re.IGNORECASE), r"\1[REDACTED]\2"),
    (re.compile(r'("authorization"\s*:\s*")[^"]+(")', re.IGNORECASE), r"\1[REDACTED]\2"),
    (re.compile(r"(authorization\s*:\s*bearer\s+)[^\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    # legacy HubSpot API keys travel as a query parameter
    (re.compile(r"(hapikey=)[^&\s\"]+", re.IGNORECASE), r"\1[REDACTED]"),
    # private app tokens: pat-<region>-<uuid>
    (re.compile(r"\bpat-[a-z0-9]+-[0-9a-f-]{20,}\b", re.IGNORECASE), "[REDACTED]"),
]


def redact_text(text: str, max_len: int = 1200) -> str:
    if not text:
        return ""
    out = text
    for pat, repl in _REDACT_PATTERNS:
        out = pat.sub(repl, out)
    return out[:max_len]


def body_excerpt(resp: Any, limit: int = 2000) -> str:
    """Redacted, truncated response body; empty string if the body can't be read."""
    try:
        t = getattr(resp, "text", "") or ""
    except Exception:
        return ""
    return redact_text(t, max_len=limit)
