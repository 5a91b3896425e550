"""Display helpers shared by the attempt, result and history views."""

from datetime import datetime, timezone
from typing import Optional, Union

QUESTION_TYPE_NAMES = {
    "coordinate": "Coordinate reading",
    "elevation": "Elevation reading",
    "communication": "Communication",
}

COMMUNICATION_METHOD_NAMES = {
    "sign_language": "Sign language",
    "semaphore": "Semaphore",
    "sound": "Sound signal",
    "light": "Light signal",
}

COMMUNICATION_SUBTYPE_NAMES = {
    "sign_language": {
        "number": "Number",
        "formation": "Formation",
        "command": "Command",
        "inform": "Inform",
        "specific_designation": "Specific designation",
        "direction": "Direction",
        "sentence": "Sentence (combined)",
    },
    "semaphore": {
        "command": "Command",
        "number": "Number",
        "service": "Service",
    },
}

BASE_TYPE_NAMES = {
    "intelligence": "Intelligence gathering",
    "communication": "Simple communication",
}


def _value(raw) -> Optional[str]:
    # Accept both enum members and plain strings
    if raw is None:
        return None
    return getattr(raw, "value", raw)


def question_type_name(question_type) -> str:
    key = _value(question_type)
    if not key:
        return "Unknown type"
    return QUESTION_TYPE_NAMES.get(key, key)


def communication_method_name(method: Optional[str]) -> str:
    if not method:
        return ""
    return COMMUNICATION_METHOD_NAMES.get(method, method)


def communication_subtype_name(method: Optional[str], subtype: Optional[str]) -> str:
    if not method or not subtype:
        return ""
    return COMMUNICATION_SUBTYPE_NAMES.get(method, {}).get(subtype, subtype)


def communication_type_display(method: Optional[str], subtype: Optional[str]) -> str:
    """Label like 'Sign language - Number'"""
    result = communication_method_name(method)
    subtype_name = communication_subtype_name(method, subtype)
    if subtype_name:
        result += f" - {subtype_name}"
    return result


def format_time_left(seconds: Optional[int]) -> str:
    if seconds is None:
        return "--:--"
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes:02d}:{secs:02d}"


def parse_utc(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse a backend timestamp.

    Strings without a timezone designator are UTC, so they get one attached.
    Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_utc_to_local(
    value: Union[str, datetime, None], placeholder: str = "-", tz=None
) -> str:
    """YYYY-MM-DD HH:MM:SS in the local (or given) timezone"""
    parsed = parse_utc(value)
    if parsed is None:
        return placeholder
    return parsed.astimezone(tz).strftime("%Y-%m-%d %H:%M:%S")


def format_duration(seconds: Optional[float]) -> str:
    if seconds is None:
        return "-"
    minutes, secs = divmod(int(round(seconds)), 60)
    if minutes:
        return f"{minutes} min {secs} s"
    return f"{secs} s"
