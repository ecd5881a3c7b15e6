"""
MODULE OVERVIEW:
Small display helpers used by the CLI and the live view.

WHAT IS HAPPENING HERE:
Nothing here reaches for a process-wide translator. Anything that produces user-facing
words takes a `translate` callable, and falls back to the English table below.
"""
import math
import re
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

Translator = Callable[[str, Mapping[str, Any]], str]

DEFAULT_MESSAGES: dict[str, str] = {
    "chat.time.justNow": "just now",
    "chat.time.minutesAgo": "{minutes}m ago",
    "chat.time.hoursAgo": "{hours}h ago",
    "chat.time.daysAgo": "{days}d ago",
}

_SIZE_UNITS = ["Bytes", "KB", "MB", "GB"]
_CAMEL_BOUNDARY = re.compile(r"([a-z])([A-Z])")


def default_translate(key: str, values: Mapping[str, Any]) -> str:
    template = DEFAULT_MESSAGES.get(key)
    if template is None:
        return key
    return template.format(**values)


def format_file_size(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    index = min(int(math.floor(math.log(size) / math.log(1024))), len(_SIZE_UNITS) - 1)
    value = float(f"{size / 1024 ** index:.2f}")
    return f"{value:g} {_SIZE_UNITS[index]}"


def format_relative_time(
    moment: datetime,
    translate: Translator = default_translate,
    now: datetime | None = None,
) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    diff_s = (now - moment).total_seconds()
    minutes = int(diff_s // 60)
    hours = int(diff_s // 3600)
    days = int(diff_s // 86400)

    if minutes < 1:
        return translate("chat.time.justNow", {})
    if minutes < 60:
        return translate("chat.time.minutesAgo", {"minutes": minutes})
    if hours < 24:
        return translate("chat.time.hoursAgo", {"hours": hours})
    if days < 7:
        return translate("chat.time.daysAgo", {"days": days})
    return moment.date().isoformat()


def format_tool_name(name: str | None) -> str:
    """`search_web` -> `Search Web`, `fetchURLContent` -> `Fetch Urlcontent`."""
    if not name:
        return "Unknown Tool"
    spaced = _CAMEL_BOUNDARY.sub(r"\1 \2", name.replace("_", " "))
    return " ".join(word[:1].upper() + word[1:].lower() for word in spaced.split(" "))


def get_file_extension(filename: str) -> str:
    index = filename.rfind(".")
    if index <= 0:
        return ""
    return filename[index + 1:].lower()


def is_image_file(mime_type: str) -> bool:
    return mime_type.startswith("image/")


def message_text_content(content: str | list[dict[str, Any]]) -> str:
    if isinstance(content, str):
        return content
    return "".join(
        part["text"] for part in content
        if part.get("type") == "text" and part.get("text")
    )
