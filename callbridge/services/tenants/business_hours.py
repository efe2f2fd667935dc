"""Business hours formatting for voice responses."""
from typing import Any, Dict, Optional

DAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
WEEKDAYS = DAYS[:5]

DEFAULT_BUSINESS_HOURS: Dict[str, Dict[str, Any]] = {
    "monday": {"open": "09:00", "close": "17:00", "enabled": True},
    "tuesday": {"open": "09:00", "close": "17:00", "enabled": True},
    "wednesday": {"open": "09:00", "close": "17:00", "enabled": True},
    "thursday": {"open": "09:00", "close": "17:00", "enabled": True},
    "friday": {"open": "09:00", "close": "17:00", "enabled": True},
    "saturday": {"open": "10:00", "close": "14:00", "enabled": False},
    "sunday": {"open": "10:00", "close": "14:00", "enabled": False},
}


def _same_hours(first: Dict[str, Any], second: Dict[str, Any]) -> bool:
    return (
        first.get("enabled") == second.get("enabled")
        and first.get("open") == second.get("open")
        and first.get("close") == second.get("close")
    )


def format_business_hours(hours: Optional[Dict[str, Any]]) -> str:
    """
    Summarize business hours as a sentence the agent can speak.

    Args:
        hours: Mapping of lowercase day name to {"open", "close", "enabled"}

    Returns:
        Spoken summary string
    """
    if not hours:
        return "I don't have business hours information available."

    open_days = [day for day in DAYS if (hours.get(day) or {}).get("enabled")]
    if not open_days:
        return "Business hours are not currently available."

    monday = hours.get("monday") or {}
    weekdays_same = all(_same_hours(hours.get(day) or {}, monday) for day in WEEKDAYS[1:])

    if weekdays_same and monday.get("enabled"):
        summary = f"We're open Monday through Friday from {monday['open']} to {monday['close']}"
        saturday = hours.get("saturday") or {}
        sunday = hours.get("sunday") or {}
        if saturday.get("enabled"):
            summary += f", Saturday from {saturday['open']} to {saturday['close']}"
        if sunday.get("enabled"):
            summary += f", and Sunday from {sunday['open']} to {sunday['close']}"
        return summary + "."

    return "Our hours vary by day. Would you like me to tell you about a specific day?"
