"""Placeholder templates rendered from regex capture groups.

Templates reference named capture groups with ``${name}`` placeholders:

    >>> compiled = re.compile(r"(?P<name>\\w+)\\s+(?P<age>\\d+)")
    >>> render_with_groups(compiled, "John 25", "User ${name} is ${age}",
    ...                    group_names_of(compiled))
    'User John is 25'

The same placeholder pattern is used when rules are validated and when
templates are rendered per request.
"""

from __future__ import annotations

import re

PLACEHOLDER_PATTERN = re.compile(r"\$\{([^}]+)\}")


class NoMatchError(Exception):
    """Raised when a rule's pattern does not match the target value."""

    def __init__(self, value: str, pattern: str) -> None:
        self.value = value
        self.pattern = pattern
        super().__init__(f"input {value!r} does not match pattern {pattern!r}")


def placeholder_names(template: str) -> list[str]:
    """Return placeholder names in order of appearance."""
    return PLACEHOLDER_PATTERN.findall(template)


def group_names_of(compiled: re.Pattern[str]) -> tuple[str, ...]:
    """Return positional capture group names.

    Index 0 is the whole match. Unnamed groups are empty strings.
    """
    names = [""] * (compiled.groups + 1)
    for name, index in compiled.groupindex.items():
        names[index] = name
    return tuple(names)


def render_with_groups(
    compiled: re.Pattern[str],
    value: str,
    template: str,
    group_names: tuple[str, ...] | list[str],
) -> str:
    """Match ``value`` and substitute named groups into ``template``.

    Args:
        compiled: Compiled pattern with named capture groups.
        value: String to match; the leftmost match is used.
        template: Output format with ``${name}`` placeholders.
        group_names: Positional group names from ``group_names_of``.

    Returns:
        The template with every placeholder replaced. Placeholders naming a
        group that is absent, or that did not participate in the match,
        render as an empty string.

    Raises:
        NoMatchError: If the pattern does not match ``value``.
    """
    match = compiled.search(value)
    if match is None:
        raise NoMatchError(value, compiled.pattern)

    groups: dict[str, str] = {}
    for index, name in enumerate(group_names):
        if name and 0 < index <= compiled.groups:
            groups[name] = match.group(index) or ""

    return PLACEHOLDER_PATTERN.sub(lambda m: groups.get(m.group(1), ""), template)
