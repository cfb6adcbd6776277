# app/core/formatting.py

# HTML-significant characters and their entity replacements.
_HTML_ESCAPES = str.maketrans(
    {
        "<": "&lt;",
        ">": "&gt;",
        "&": "&amp;",
        '"': "&quot;",
        "'": "&#x27;",
        "`": "&#x60;",
    }
)


def sanitize_string(value: str | None) -> str:
    """
    Escape `< > & " ' \\`` and trim surrounding whitespace.

    Applied to anything that may end up rendered (coupon codes, messages
    coming back from the remote authority), independent of format checks.
    """
    if not value or not isinstance(value, str):
        return ""
    return value.translate(_HTML_ESCAPES).strip()


def format_price(amount: float) -> str:
    """
    Two-decimal display price, e.g. 148.5 -> "148.50".
    """
    return f"{amount:.2f}"


def format_time_remaining(ms: int) -> str:
    """
    User-friendly cooldown text: "750ms" below one second, "1.5s" above.
    """
    if ms < 1000:
        return f"{ms}ms"
    return f"{ms / 1000:.1f}s"
