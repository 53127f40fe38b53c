"""Dynamic header rule engine.

Holds an ordered, validated rule set and applies it to each request. Rules
run left to right against the same request, so a rule may read a header
written by an earlier rule in the same pass.

Example:
    engine = HeaderRuleEngine([
        HeaderRule(
            header_name="X-Request-Id",
            pattern=r"id=(?P<id>[a-f0-9-]+)",
            template="req-${id}",
            target="query",
            fallback="unknown-request",
        ),
    ])

    request = RequestView.from_url("https://example.com/?id=abc-123&x=1")
    engine.process(request)
    request.header("X-Request-Id")  # "req-abc-123"
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from dynheaders.observability import log_render_failure
from dynheaders.request import RequestView
from dynheaders.rules import CompiledRule, HeaderRule, RuleValidationError, validate_rule
from dynheaders.targets import resolve_target
from dynheaders.template import NoMatchError, render_with_groups

logger = structlog.get_logger()


@dataclass(frozen=True)
class RenderFailure:
    """Diagnostic event for a rule that could not render a value."""

    header_name: str
    target_value: str
    pattern: str
    template: str
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "header_name": self.header_name,
            "target_value": self.target_value,
            "pattern": self.pattern,
            "template": self.template,
            "reason": self.reason,
        }


DiagnosticSink = Callable[[RenderFailure], None]


class ApplyOutcome(Enum):
    """What a single rule application did to the request."""

    SET = "set"
    FALLBACK = "fallback"
    UNCHANGED = "unchanged"


def apply_rule(
    rule: CompiledRule,
    request: RequestView,
    sink: DiagnosticSink | None = None,
) -> ApplyOutcome:
    """Apply one rule to a request.

    The rendered value overwrites any existing header value. When the
    pattern does not match, a RenderFailure is sent to the sink and the
    fallback is written if one is configured; otherwise the header is left
    as it was. Never raises for a non-matching value, even if the sink does.
    """
    value = resolve_target(rule.selector, request)

    try:
        rendered = render_with_groups(rule.compiled, value, rule.template, rule.group_names)
    except NoMatchError as e:
        failure = RenderFailure(
            header_name=rule.header_name,
            target_value=value,
            pattern=rule.pattern,
            template=rule.template,
            reason=str(e),
        )
        try:
            (sink or log_render_failure)(failure)
        except Exception:
            logger.exception("diagnostic sink failed", header=rule.header_name)

        if rule.fallback:
            request.set_header(rule.header_name, rule.fallback)
            return ApplyOutcome.FALLBACK
        return ApplyOutcome.UNCHANGED

    request.set_header(rule.header_name, rendered)
    return ApplyOutcome.SET


class HeaderRuleEngine:
    """Ordered set of validated header rules.

    Every rule is validated at construction; if any rule is invalid the
    engine is not created. The rule set is immutable afterwards and safe
    to share across concurrent requests.
    """

    def __init__(
        self,
        rules: Iterable[HeaderRule] | None,
        *,
        sink: DiagnosticSink | None = None,
        name: str = "dynamic-headers",
    ) -> None:
        """Validate rules and build the engine.

        Args:
            rules: Rule descriptors in evaluation order.
            sink: Receives a RenderFailure for every rule that does not
                match. Defaults to structured logging.
            name: Instance name, used in log events.

        Raises:
            RuleValidationError: If the configuration is missing or any rule
                is invalid. The error names the first offending rule.
        """
        if rules is None:
            raise RuleValidationError("plugin configuration is missing")

        compiled: list[CompiledRule] = []
        for index, rule in enumerate(rules):
            try:
                compiled.append(validate_rule(rule))
            except RuleValidationError as e:
                raise RuleValidationError(
                    f"rule error: {e.reason}",
                    index=index,
                    header_name=rule.header_name or None,
                ) from e

        self._rules: tuple[CompiledRule, ...] = tuple(compiled)
        self._sink = sink
        self.name = name

        logger.debug("header rules loaded", engine=name, rules=len(self._rules))

    @property
    def rules(self) -> tuple[CompiledRule, ...]:
        """Validated rules in evaluation order."""
        return self._rules

    def apply(self, rule: CompiledRule, request: RequestView) -> ApplyOutcome:
        """Apply a single rule with this engine's sink."""
        return apply_rule(rule, request, self._sink)

    def process(self, request: RequestView) -> RequestView:
        """Apply every rule, in order, to the request.

        Returns:
            The same request, with headers added or overwritten.
        """
        for rule in self._rules:
            apply_rule(rule, request, self._sink)
        return request

    __call__ = process

    def to_dict(self) -> dict[str, Any]:
        """Export engine configuration to dictionary."""
        return {"rules": [rule.to_dict() for rule in self._rules]}

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any] | None,
        *,
        sink: DiagnosticSink | None = None,
        name: str = "dynamic-headers",
    ) -> HeaderRuleEngine:
        """Create engine from dictionary configuration.

        Args:
            data: Dictionary with a "rules" list.
            sink: Optional diagnostic sink.
            name: Instance name.

        Returns:
            New HeaderRuleEngine.

        Raises:
            RuleValidationError: If data is None or any rule is invalid.
        """
        if data is None:
            raise RuleValidationError("plugin configuration is missing")
        rules = [HeaderRule.from_dict(r) for r in data.get("rules") or []]
        return cls(rules, sink=sink, name=name)

    def __len__(self) -> int:
        """Return number of rules."""
        return len(self._rules)

    def __bool__(self) -> bool:
        """Return True if engine has any rules."""
        return bool(self._rules)
