import math
import re
from typing import Any, Dict, List, Optional

from talent_match.models.models import ExtractedProfile

MAX_STRING_CHARS = 120_000
MAX_ARRAY_ITEMS = 128

# C0/C1 control characters except tab, newline and carriage return
_CONTROL_CHARS = re.compile(r"[\u0000-\u0008\u000B\u000C\u000E-\u001F\u007F-\u009F]")
_WHITESPACE_RUN = re.compile(r"\s{3,}")
_ARRAY_SPLIT = re.compile(r"[;,\n]")
_NON_NUMERIC = re.compile(r"[^\d.\-]")

PLACEHOLDER_VALUES = {"", "not extracted", "n/a", "na", "none", "null", "unknown", "not provided", "not available"}


def sanitize_string(value: Any, max_len: int = MAX_STRING_CHARS) -> Optional[str]:
    """
    Strip control characters, collapse long whitespace runs, cap length and trim.

    Returns None for None or for text that is empty after cleaning. Applying it
    to its own output returns the same text.
    """
    if value is None:
        return None
    s = str(value)
    s = _CONTROL_CHARS.sub(" ", s)
    s = _WHITESPACE_RUN.sub(" ", s)
    s = s.strip()
    if len(s) > max_len:
        s = s[:max_len].rstrip()
    return s or None


def sanitize_string_array(value: Any, max_items: int = MAX_ARRAY_ITEMS) -> Optional[List[str]]:
    """Accept a list or a `;`/`,`/newline separated string; dedupe preserving order and cap."""
    if not value:
        return None
    if isinstance(value, (list, tuple)):
        items = [sanitize_string(v) for v in value]
    elif isinstance(value, str):
        items = [sanitize_string(v) for v in _ARRAY_SPLIT.split(value)]
    else:
        return None

    seen = set()
    out = []
    for item in items:
        if not item or item in seen:
            continue
        seen.add(item)
        out.append(item)
        if len(out) >= max_items:
            break
    return out or None


def coerce_int(value: Any) -> Optional[int]:
    """Parse a number out of noisy text ("5+ years" -> 5) and floor it; None when unparsable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return math.floor(value) if math.isfinite(value) else None
    cleaned = _NON_NUMERIC.sub("", str(value))
    match = re.match(r"-?\d*\.?\d+", cleaned)
    if not match:
        return None
    try:
        number = float(match.group(0))
    except ValueError:
        return None
    return math.floor(number) if math.isfinite(number) else None


def is_meaningful(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().lower() not in PLACEHOLDER_VALUES
    return True


def normalize_profile(
    raw: Optional[Dict[str, Any]],
    fallback_text: Optional[str] = None,
    file_url: Optional[str] = None,
) -> ExtractedProfile:
    raw = raw or {}
    return ExtractedProfile(
        full_name=sanitize_string(raw.get("full_name")),
        email=normalize_email(raw.get("email")),
        phone_number=sanitize_string(raw.get("phone_number")),
        location=sanitize_string(raw.get("location")),
        job_title=sanitize_string(raw.get("job_title")),
        years_of_experience=coerce_int(raw.get("years_of_experience")),
        sector=sanitize_string(raw.get("sector")),
        skills=sanitize_string_array(raw.get("skills")),
        experience=sanitize_string(raw.get("experience")),
        education=sanitize_string(raw.get("education")),
        resume_text=sanitize_string(raw.get("resume_text")) or sanitize_string(fallback_text),
        resume_file_url=file_url,
    )


def normalize_email(value: Any) -> Optional[str]:
    email = sanitize_string(value, max_len=320)
    if not email or "@" not in email or not is_meaningful(email):
        return None
    return email.lower()
