"""Birthday message rendering."""

from __future__ import annotations

import re
import string

_FORMATTER = string.Formatter()
_ALLOWED_FIELDS = {"name", "age"}

# Greeting lines we add ourselves; stripped from templates to avoid doubling them.
_GREETING_PATTERNS = (
    re.compile(r"^Halo [^,\n]+,\s*"),
    re.compile(r"^Selamat ulang tahun yang ke-\d*!\s*🎉?\s*"),
    re.compile(r"^Selamat ulang tahun!\s*"),
)


class TemplateError(ValueError):
    """Raised when a message template cannot be rendered."""


def validate_template(template: str) -> None:
    """Raise :class:`TemplateError` if *template* is not renderable."""
    if template is None or not template.strip():
        raise TemplateError("message template is empty")
    try:
        fields = [f for _, f, _, _ in _FORMATTER.parse(template) if f is not None]
    except ValueError as e:
        raise TemplateError(f"malformed message template: {e}") from e

    unknown = sorted({f for f in fields if f not in _ALLOWED_FIELDS})
    if unknown:
        raise TemplateError(f"unknown placeholder(s) in template: {', '.join(unknown)}")

    # {age} is blank when the age is hidden, so format specs must accept both
    for age in ("", 30):
        try:
            template.format(name="Alumni", age=age)
        except (ValueError, TypeError) as e:
            raise TemplateError(f"message template cannot be rendered: {e}") from e


def _strip_greeting(body: str) -> str:
    for pattern in _GREETING_PATTERNS:
        body = pattern.sub("", body)
    return body.strip()


def render_birthday_message(
    template: str,
    display_name: str,
    age: int | None,
    include_age: bool,
) -> str:
    """Compose the personalised birthday message.

    ``{name}`` and ``{age}`` placeholders in *template* are substituted;
    ``{age}`` renders empty unless the age is included.
    """
    validate_template(template)

    show_age = include_age and age is not None
    body = template.format(name=display_name, age=age if show_age else "")
    body = _strip_greeting(body)

    if show_age:
        header = f"Halo {display_name},\n\nSelamat ulang tahun yang ke-{age}! 🎉"
    else:
        header = f"Halo {display_name},\n\nSelamat ulang tahun!"

    return f"{header}\n\n{body}" if body else header
