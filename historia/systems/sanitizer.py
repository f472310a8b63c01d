"""
Response sanitizer for oracle output.

Pure functions: sanitize(raw_text, fallback_year) -> OraclePayload.
No state mutation, no side effects.

Oracle text is untrusted. Each field is checked on its own and each
update element is kept or dropped on its own, so one bad element never
costs the rest of the turn. The only hard failure is text that does not
decode as JSON at all.
"""

import json
import logging
import math
import re

from ..state.schema import (
    EventCategory,
    EventUpdate,
    OraclePayload,
    OwnerUpdate,
    RelationUpdate,
    TimeUpdate,
)

logger = logging.getLogger(__name__)


PLACEHOLDER_MESSAGE = "The world watches your move. Issue your next command."

_FENCE_JSON = re.compile(r"```json")
_FENCE = re.compile(r"```")
_OBJECT_SPAN = re.compile(r"\{.*\}", re.DOTALL)

# Integer literals Number() accepts besides decimal
_RADIX_PREFIXES = {"0x": 16, "0o": 8, "0b": 2}
_DECIMAL = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")

# Absent key; unlike null it never coerces to 0
_MISSING = object()


class ParseError(Exception):
    """Oracle text could not be decoded as JSON."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


# ─── Decoding ───────────────────────────────────────────────────

def extract_json(raw_text: str) -> str:
    """
    Cut the JSON object out of oracle text.

    Strips markdown fences, then takes everything from the first ``{`` to
    the last ``}``. Without braces the trimmed text is returned as is.
    """
    cleaned = _FENCE.sub("", _FENCE_JSON.sub("", raw_text))
    match = _OBJECT_SPAN.search(cleaned)
    if match:
        return match.group(0)
    return raw_text.strip()


def decode(raw_text: str) -> object:
    """Decode oracle text, raising ParseError when it is not JSON."""
    candidate = extract_json(raw_text or "")
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ParseError(f"Oracle response is not valid JSON: {e.msg}", raw_text=raw_text) from e
    except (ValueError, RecursionError) as e:
        # Nesting too deep for the decoder, or an out-of-range literal
        raise ParseError(f"Oracle response is not decodable JSON: {type(e).__name__}", raw_text=raw_text) from e


# ─── Coercion helpers ───────────────────────────────────────────

def _to_number(value: object) -> float:
    """
    Loose numeric coercion.

    Booleans count as 0/1; null and blank strings as 0. Missing keys and
    anything unparseable are NaN.
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return math.nan

    text = value.strip()
    if not text:
        return 0.0

    prefix = text[:2].lower()
    if prefix in _RADIX_PREFIXES:
        try:
            return float(int(text[2:], _RADIX_PREFIXES[prefix]))
        except ValueError:
            return math.nan

    if text in ("Infinity", "+Infinity"):
        return math.inf
    if text == "-Infinity":
        return -math.inf
    if not _DECIMAL.match(text):
        return math.nan
    return float(text)


def _to_int(value: object) -> int | None:
    """Coerce and truncate toward zero; None when not finite."""
    number = _to_number(value)
    if not math.isfinite(number):
        return None
    return math.trunc(number)


def clean_str(value: object) -> str | None:
    """Trimmed non-empty string, else None."""
    if isinstance(value, str):
        text = value.strip()
        if text:
            return text
    return None


def normalize_event_type(value: object) -> EventCategory:
    if isinstance(value, EventCategory):
        return value
    if isinstance(value, str):
        try:
            return EventCategory(value.strip().lower())
        except ValueError:
            pass
    return EventCategory.FLAVOR


# ─── Per-update validators ──────────────────────────────────────

def _owner(u: dict, fallback_year: int) -> OwnerUpdate | None:
    province = clean_str(u.get("provinceName"))
    owner = clean_str(u.get("newOwnerId"))
    if province is None or owner is None:
        return None
    return OwnerUpdate(province_name=province, new_owner_id=owner)


def _time(u: dict, fallback_year: int) -> TimeUpdate | None:
    amount = _to_int(u.get("amount", _MISSING))
    if amount is None:
        return None
    return TimeUpdate(amount=amount)


def _event(u: dict, fallback_year: int) -> EventUpdate | None:
    description = u.get("description")
    if not isinstance(description, str):
        return None
    year = _to_int(u.get("year", _MISSING))
    return EventUpdate(
        description=description.strip(),
        event_type=normalize_event_type(u.get("eventType")),
        year=fallback_year if year is None else year,
    )


def _relation(u: dict, fallback_year: int) -> RelationUpdate | None:
    nation_a = clean_str(u.get("nationA"))
    nation_b = clean_str(u.get("nationB"))
    relation_type = clean_str(u.get("relationType"))
    if nation_a is None or nation_b is None or relation_type is None:
        return None
    reason = u.get("reason")
    return RelationUpdate(
        nation_a=nation_a,
        nation_b=nation_b,
        relation_type=relation_type,
        reason=reason.strip() if isinstance(reason, str) else "",
    )


UPDATE_VALIDATORS = {
    "owner": _owner,
    "time": _time,
    "event": _event,
    "relation": _relation,
}


# ─── Payload ────────────────────────────────────────────────────

def sanitize_payload(payload: object, fallback_year: int) -> OraclePayload:
    """
    Validate an already-decoded payload.

    Never raises. A non-object payload is treated as empty.
    """
    data = payload if isinstance(payload, dict) else {}

    message = clean_str(data.get("message")) or PLACEHOLDER_MESSAGE

    updates = []
    raw_updates = data.get("updates")
    if isinstance(raw_updates, list):
        for index, element in enumerate(raw_updates):
            if not isinstance(element, dict):
                logger.debug("Dropping update %d: not an object", index)
                continue
            kind = element.get("type")
            validator = UPDATE_VALIDATORS.get(kind) if isinstance(kind, str) else None
            update = validator(element, fallback_year) if validator else None
            if update is None:
                logger.debug("Dropping update %d: %r", index, element)
                continue
            updates.append(update)

    return OraclePayload(
        message=message,
        updates=updates,
        story_so_far=clean_str(data.get("storySoFar")),
    )


def sanitize(raw_text: str, fallback_year: int) -> OraclePayload:
    """
    Turn raw oracle text into a validated payload.

    Args:
        raw_text: Oracle response, possibly fenced or padded with prose
        fallback_year: Year stamped on events that carry no usable year

    Returns:
        OraclePayload with a usable message and only trusted updates

    Raises:
        ParseError: If the text holds no decodable JSON
    """
    return sanitize_payload(decode(raw_text), fallback_year)
