"""Path scoping shared by the protected-group middleware."""

from typing import Iterable

PROTECTED_PREFIXES: tuple[str, ...] = ("/api/",)


def is_protected_path(path: str, prefixes: Iterable[str] = PROTECTED_PREFIXES) -> bool:
    """True when path belongs to the authenticated route group."""
    return any(path.startswith(prefix) for prefix in prefixes)
