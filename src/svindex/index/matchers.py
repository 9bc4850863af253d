"""Name matchers used by declaration and reference lookups."""

from __future__ import annotations

from typing import Callable

NameMatcher = Callable[[str, str], bool]


def exact_match(candidate: str, name: str) -> bool:
    return candidate == name


def icase_match(candidate: str, name: str) -> bool:
    return candidate.lower() == name.lower()


def prefix_match(candidate: str, name: str) -> bool:
    return candidate.startswith(name)


def icase_prefix_match(candidate: str, name: str) -> bool:
    return candidate.lower().startswith(name.lower())


MATCHERS: dict[str, NameMatcher] = {
    "exact": exact_match,
    "icase": icase_match,
    "prefix": prefix_match,
    "icase_prefix": icase_prefix_match,
}


def get_matcher(matcher: str | NameMatcher) -> NameMatcher:
    """Return a matcher callable from a name or pass a callable through."""
    if callable(matcher):
        return matcher
    try:
        return MATCHERS[matcher]
    except KeyError:
        raise ValueError(
            f"Unknown matcher {matcher!r}; expected one of {sorted(MATCHERS)}"
        ) from None
