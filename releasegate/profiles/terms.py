"""Term matching shared by restriction profiles and custom formats.

A term is either a literal, matched case-insensitively as a substring, or a
regular expression written as ``/pattern/``, applied as given (case-sensitive
unless the pattern says otherwise).
"""

import re
from functools import lru_cache

from releasegate.errors import MalformedUserPattern

REGEX_TERM = re.compile(r"^/(?P<pattern>.+)/$")


def is_regex_term(term: str) -> bool:
    return REGEX_TERM.match(term.strip()) is not None


@lru_cache(maxsize=512)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def compile_term(term: str) -> re.Pattern[str] | None:
    """Compile a ``/regex/`` term, returning None for literal terms.

    Raises:
        MalformedUserPattern: If the regex does not compile.
    """
    match = REGEX_TERM.match(term.strip())
    if not match:
        return None
    try:
        return _compile(match.group("pattern"))
    except re.error as e:
        raise MalformedUserPattern(term, str(e)) from e


def is_match(term: str, value: str) -> bool:
    """Check a single term against a release title."""
    term = term.strip()
    if not term:
        return False

    pattern = compile_term(term)
    if pattern is not None:
        return pattern.search(value) is not None

    return term.lower() in value.lower()


def find_match(terms: list[str] | tuple[str, ...], value: str) -> str | None:
    """Return the first term matching ``value`` (OR semantics), or None."""
    for term in terms:
        if is_match(term, value):
            return term
    return None


def find_malformed(terms: list[str] | tuple[str, ...]) -> MalformedUserPattern | None:
    """Return the error for the first regex term that does not compile."""
    for term in terms:
        try:
            compile_term(term)
        except MalformedUserPattern as e:
            return e
    return None
