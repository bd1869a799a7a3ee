"""
Secret redaction for log lines, events and error messages.
"""

import re
from typing import Dict, Iterable, Optional

TOKENISH = re.compile(r"(?i)(secret|token|password|apikey|api_key|authorization)")
HEX_LONG = re.compile(r"\b[0-9a-f]{32,}\b", re.I)
BEARER = re.compile(r"(?i)bearer\s+[A-Za-z0-9._\-]+")

REDACTED = "[REDACTED]"


def redact_string(s: str) -> str:
    """Replace the whole string when it looks like it carries a credential."""
    if TOKENISH.search(s) or HEX_LONG.search(s):
        return REDACTED
    return s


def redact_env(d: Dict[str, str]) -> Dict[str, str]:
    return {k: REDACTED for k in d.keys()}


def scrub(text: Optional[str], secrets: Iterable[str] = ()) -> str:
    """
    Remove known secret values and bearer tokens from free text.

    Unlike redact_string this keeps the surrounding message readable,
    so it is used on provider error messages before they are logged or
    stored on a job.

    Args:
        text: Message to clean
        secrets: Literal values (tokens, env var values) to mask

    Returns:
        Cleaned message
    """
    if not text:
        return ""
    cleaned = BEARER.sub(f"Bearer {REDACTED}", text)
    for secret in secrets:
        # very short values would mask ordinary words
        if secret and len(secret) >= 4:
            cleaned = cleaned.replace(secret, REDACTED)
    return HEX_LONG.sub(REDACTED, cleaned)
