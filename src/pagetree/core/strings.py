"""String helpers for ids and routes."""

import re
import unicodedata

UNSAFE_PATTERN = re.compile(r"[^a-z0-9_.]+")


def safe_string(value: str, replacement: str = "-", lower: bool = True) -> str:
    """Convert a string into an ASCII slug.

    Accents are stripped, unsafe characters are collapsed into the
    replacement and the replacement is trimmed from both ends.

    Args:
        value: String to convert.
        replacement: Substitute for runs of unsafe characters.
        lower: Whether to lowercase the result.

    Returns:
        The slug, empty when nothing safe remains.
    """
    value = unicodedata.normalize("NFKD", value or "")
    value = value.encode("ascii", "ignore").decode("ascii")
    if lower:
        value = value.lower()
        return UNSAFE_PATTERN.sub(replacement, value).strip(replacement)

    return re.sub(r"[^A-Za-z0-9_.]+", replacement, value).strip(replacement)
