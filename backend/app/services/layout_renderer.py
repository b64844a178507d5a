"""
Header/footer template rendering.

Templates reference variables as ``/namespace.field/``; ``{{namespace.field}}``
is accepted as well. An optional ``|argument`` is either a format directive
(uppercase, lowercase, capitalize, title) or a fallback used when the variable
has no value. Unresolvable tokens are left in the output untouched.

Everything here is pure: the same template and context always render the same
string, and no input raises.
"""
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any

TOKEN_RE = re.compile(
    r"/(?P<slash_path>[a-zA-Z0-9_.]+)(?:\|(?P<slash_arg>[^/]+))?/"
    r"|\{\{\s*(?P<brace_path>[a-zA-Z0-9_.]+)(?:\|(?P<brace_arg>[^}]+?))?\s*\}\}"
)

FORMAT_DIRECTIVES = ("uppercase", "lowercase", "capitalize", "title")

DATE_FORMATS = ("MM/DD/YYYY", "DD/MM/YYYY", "YYYY-MM-DD", "Month D, YYYY")

_MONTHS = (
    "January", "February", "March", "April", "May", "June", "July",
    "August", "September", "October", "November", "December",
)


def apply_format(value: str, directive: str) -> str:
    directive = directive.strip().lower()
    if directive == "uppercase":
        return value.upper()
    if directive == "lowercase":
        return value.lower()
    if directive == "capitalize":
        return value[:1].upper() + value[1:].lower()
    if directive == "title":
        return re.sub(r"\w\S*", lambda m: m.group(0)[:1].upper() + m.group(0)[1:].lower(), value)
    return value


def format_date(value: date | datetime | None, fmt: str = "Month D, YYYY") -> str:
    if value is None:
        return ""
    if fmt == "MM/DD/YYYY":
        return f"{value.month:02d}/{value.day:02d}/{value.year:04d}"
    if fmt == "DD/MM/YYYY":
        return f"{value.day:02d}/{value.month:02d}/{value.year:04d}"
    if fmt == "YYYY-MM-DD":
        return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
    return f"{_MONTHS[value.month - 1]} {value.day}, {value.year}"


def format_time(value: datetime) -> str:
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour:02d}:{value.minute:02d} {suffix}"


def resolve_path(context: dict[str, Any], path: str) -> str | None:
    current: Any = context
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    if current is None or isinstance(current, dict):
        return None
    if isinstance(current, (list, tuple)):
        current = ", ".join(str(v) for v in current)
    text = str(current)
    return text or None


def render(template: str | None, context: dict[str, Any]) -> str:
    if not template:
        return ""

    def _substitute(match: re.Match) -> str:
        path = match.group("slash_path") or match.group("brace_path")
        arg = match.group("slash_arg") or match.group("brace_arg")
        is_directive = arg is not None and arg.strip().lower() in FORMAT_DIRECTIVES

        value = resolve_path(context, path)
        if value is None:
            if arg is not None and not is_directive:
                return arg
            return match.group(0)
        if is_directive:
            return apply_format(value, arg)
        return value

    return TOKEN_RE.sub(_substitute, template)


def extract_variables(template: str | None) -> list[str]:
    """Distinct variable paths referenced by ``template``, in order of appearance."""
    seen: list[str] = []
    for match in TOKEN_RE.finditer(template or ""):
        path = match.group("slash_path") or match.group("brace_path")
        if path not in seen:
            seen.append(path)
    return seen


def render_page_numbering(fmt: str | None, page_number: int | None, total_pages: int | None) -> str:
    if not fmt or page_number is None:
        return ""
    return fmt.replace("{current}", str(page_number)).replace("{total}", str(total_pages or page_number))


def build_context(
    *,
    policy: dict[str, Any],
    organization_name: str,
    variables: dict[str, str | None],
    now: datetime,
    date_format: str = "Month D, YYYY",
    page_number: int | None = None,
    total_pages: int | None = None,
) -> dict[str, Any]:
    """Assemble the variable namespaces. ``now`` supplies printDate/printTime."""
    custom = {k: v for k, v in variables.items() if v}
    org = {**custom, "name": organization_name}
    policy_ns = dict(policy)
    for key in ("effectiveDate", "expirationDate", "reviewDate"):
        if isinstance(policy_ns.get(key), (date, datetime)):
            policy_ns[key] = format_date(policy_ns[key], date_format)
    return {
        "policy": policy_ns,
        "organization": org,
        "company": org,
        "document": {
            "pageNumber": page_number,
            "totalPages": total_pages,
            "printDate": format_date(now, date_format),
            "printTime": format_time(now),
        },
    }
