"""Header setting rules and their load-time validation.

A rule extracts a value from the request, matches it against a regular
expression with named capture groups, and renders a template from the
captured groups into a request header.

Example:
    rule = HeaderRule(
        header_name="X-API-Version",
        pattern=r"^/api/v(?P<version>\\d+)/.*",
        template="v${version}",
        target="path",
    )
    compiled = validate_rule(rule)
    compiled.group_names  # ("", "version")

Validation happens once, before any request is served. The resulting
CompiledRule is frozen and shared read-only by every request.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from dynheaders.targets import DEFAULT_TARGET, Target
from dynheaders.template import group_names_of, placeholder_names


class RuleValidationError(ValueError):
    """Raised when a rule cannot be validated."""

    def __init__(
        self,
        reason: str,
        *,
        index: int | None = None,
        header_name: str | None = None,
    ) -> None:
        self.reason = reason
        self.index = index
        self.header_name = header_name
        super().__init__(reason)


@dataclass
class HeaderRule:
    """Rule descriptor as supplied by configuration."""

    header_name: str = ""
    """Request header to set (e.g. "X-Request-Id")."""

    pattern: str = ""
    """Regular expression matched against the target value."""

    template: str = ""
    """Output format with ${name} placeholders for named groups."""

    target: str = ""
    """Target selector. Defaults to "host" when empty."""

    fallback: str = ""
    """Value written when the pattern does not match. Empty leaves the
    header untouched."""

    def to_dict(self) -> dict[str, Any]:
        """Convert rule to dictionary using the plugin field names."""
        return {
            "headerName": self.header_name,
            "regex": self.pattern,
            "format": self.template,
            "target": self.target,
            "default": self.fallback,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HeaderRule:
        """Create a rule from a dictionary.

        Accepts both snake_case keys and the plugin's camelCase keys
        (headerName, regex, format, default).
        """

        def pick(*keys: str) -> str:
            for key in keys:
                value = data.get(key)
                if value:
                    return str(value)
            return ""

        return cls(
            header_name=pick("header_name", "headerName"),
            pattern=pick("pattern", "regex"),
            template=pick("template", "format"),
            target=pick("target"),
            fallback=pick("fallback", "default"),
        )


@dataclass(frozen=True)
class CompiledRule:
    """A validated rule ready for evaluation."""

    header_name: str
    pattern: str
    template: str
    target: str
    fallback: str
    compiled: re.Pattern[str] = field(repr=False, compare=False)
    group_names: tuple[str, ...] = field(repr=False)
    selector: Target = field(repr=False)

    @property
    def named_groups(self) -> frozenset[str]:
        return frozenset(name for name in self.group_names if name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "headerName": self.header_name,
            "regex": self.pattern,
            "format": self.template,
            "target": self.target,
            "default": self.fallback,
        }


def validate_rule(rule: HeaderRule) -> CompiledRule:
    """Validate a rule and compile its pattern.

    Checks, in order:
      - header_name, pattern and template are present
      - the pattern compiles
      - every ${name} placeholder in the template names a group in the pattern

    An empty target defaults to "host". Target values are not checked
    further; unknown selectors resolve to the host at request time.

    Args:
        rule: The rule descriptor. It is not modified.

    Returns:
        A new CompiledRule.

    Raises:
        RuleValidationError: If the rule is missing a field, has an invalid
            pattern, or references an unknown group.
    """
    if not rule.header_name:
        raise RuleValidationError("headerName is required")

    if not rule.pattern:
        raise RuleValidationError("regex is required", header_name=rule.header_name)

    if not rule.template:
        raise RuleValidationError("format is required", header_name=rule.header_name)

    target = rule.target or DEFAULT_TARGET

    try:
        compiled = re.compile(rule.pattern)
    except re.error as e:
        raise RuleValidationError(
            f"invalid regex pattern '{rule.pattern}': {e}",
            header_name=rule.header_name,
        ) from e

    group_names = group_names_of(compiled)
    named = {name for name in group_names if name}

    for name in placeholder_names(rule.template):
        if name not in named:
            raise RuleValidationError(
                f"format string references unknown group '{name}'",
                header_name=rule.header_name,
            )

    return CompiledRule(
        header_name=rule.header_name,
        pattern=rule.pattern,
        template=rule.template,
        target=target,
        fallback=rule.fallback,
        compiled=compiled,
        group_names=group_names,
        selector=Target.parse(target),
    )
