"""Tests for the dynamic header rule engine."""

from __future__ import annotations

import pytest
from structlog.testing import capture_logs

from dynheaders.engine import (
    ApplyOutcome,
    HeaderRuleEngine,
    RenderFailure,
    apply_rule,
)
from dynheaders.request import RequestView
from dynheaders.rules import HeaderRule, RuleValidationError, validate_rule

REQUEST_ID_RULE = HeaderRule(
    header_name="X-Request-Id",
    pattern=r"id=(?P<id>[a-f0-9-]+)",
    template="req-${id}",
    target="query",
)

API_VERSION_RULE = HeaderRule(
    header_name="X-API-Version",
    pattern=r"^/api/v(?P<version>\d+)/.*",
    template="v${version}",
    target="path",
)


class RecordingSink:
    """Collects render failures."""

    def __init__(self) -> None:
        self.events: list[RenderFailure] = []

    def __call__(self, event: RenderFailure) -> None:
        self.events.append(event)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


class TestScenarios:
    """End-to-end rule scenarios."""

    def test_query_match_sets_header(self, sink):
        """Test a matching query sets the rendered header."""
        engine = HeaderRuleEngine([REQUEST_ID_RULE], sink=sink)
        request = RequestView.from_url("https://example.com/?id=abc-123&x=1")

        engine.process(request)

        assert request.header("X-Request-Id") == "req-abc-123"
        assert sink.events == []

    def test_no_match_without_fallback_leaves_header(self, sink):
        """Test a non-matching query leaves the header unset."""
        engine = HeaderRuleEngine([REQUEST_ID_RULE], sink=sink)
        request = RequestView.from_url("https://example.com/?foo=bar")

        engine.process(request)

        assert "X-Request-Id" not in request.headers

    def test_no_match_keeps_existing_value(self, sink):
        """Test a non-matching rule does not touch an existing header."""
        engine = HeaderRuleEngine([REQUEST_ID_RULE], sink=sink)
        request = RequestView.from_url(
            "https://example.com/?foo=bar",
            headers={"X-Request-Id": "upstream"},
        )

        engine.process(request)

        assert request.headers.getall("X-Request-Id") == ["upstream"]

    def test_no_match_with_fallback(self, sink):
        """Test the fallback is written when the pattern does not match."""
        rule = HeaderRule(
            header_name=REQUEST_ID_RULE.header_name,
            pattern=REQUEST_ID_RULE.pattern,
            template=REQUEST_ID_RULE.template,
            target=REQUEST_ID_RULE.target,
            fallback="unknown-request",
        )
        engine = HeaderRuleEngine([rule], sink=sink)
        request = RequestView.from_url("https://example.com/?foo=bar")

        engine.process(request)

        assert request.header("X-Request-Id") == "unknown-request"

    def test_path_version(self, sink):
        """Test a path rule extracts the API version."""
        engine = HeaderRuleEngine([API_VERSION_RULE], sink=sink)
        request = RequestView.from_url("https://example.com/api/v2/users")

        engine.process(request)

        assert request.header("X-API-Version") == "v2"

    def test_later_rule_reads_earlier_header(self, sink):
        """Test rules see headers written earlier in the same pass."""
        major = HeaderRule(
            header_name="X-API-Major",
            pattern=r"^v(?P<major>\d+)$",
            template="major-${major}",
            target="header:x-api-version",
        )
        engine = HeaderRuleEngine([API_VERSION_RULE, major], sink=sink)
        request = RequestView.from_url("https://example.com/api/v2/users")

        engine.process(request)

        assert request.header("X-API-Version") == "v2"
        assert request.header("X-API-Major") == "major-2"
        assert sink.events == []

    def test_order_matters(self, sink):
        """Test a rule placed before its input header sees nothing."""
        major = HeaderRule(
            header_name="X-API-Major",
            pattern=r"^v(?P<major>\d+)$",
            template="major-${major}",
            target="header:X-API-Version",
        )
        engine = HeaderRuleEngine([major, API_VERSION_RULE], sink=sink)
        request = RequestView.from_url("https://example.com/api/v2/users")

        engine.process(request)

        assert "X-API-Major" not in request.headers
        assert request.header("X-API-Version") == "v2"
        assert len(sink.events) == 1

    def test_default_target_is_host(self, sink):
        """Test a rule without target reads the host."""
        rule = HeaderRule(
            header_name="X-Tenant",
            pattern=r"^(?P<tenant>[^.]+)\.example\.com",
            template="${tenant}",
        )
        engine = HeaderRuleEngine([rule], sink=sink)
        request = RequestView.from_url("https://acme.example.com/")

        engine.process(request)

        assert request.header("X-Tenant") == "acme"


class TestApplyRule:
    """Tests for apply_rule."""

    def test_outcome_set(self, sink):
        request = RequestView.from_url("https://example.com/?id=ff")
        assert apply_rule(validate_rule(REQUEST_ID_RULE), request, sink) is ApplyOutcome.SET

    def test_outcome_unchanged(self, sink):
        request = RequestView.from_url("https://example.com/")
        assert apply_rule(validate_rule(REQUEST_ID_RULE), request, sink) is ApplyOutcome.UNCHANGED

    def test_outcome_fallback(self, sink):
        rule = validate_rule(
            HeaderRule("X-Request-Id", r"id=(?P<id>\d+)", "${id}", "query", "none")
        )
        request = RequestView.from_url("https://example.com/")
        assert apply_rule(rule, request, sink) is ApplyOutcome.FALLBACK

    def test_overwrites_existing_values(self, sink):
        """Test a rendered value replaces all prior values."""
        request = RequestView.from_url("https://example.com/?id=ab")
        request.headers.add("X-Request-Id", "one")
        request.headers.add("x-request-id", "two")

        apply_rule(validate_rule(REQUEST_ID_RULE), request, sink)

        assert request.headers.getall("X-Request-Id") == ["req-ab"]

    def test_idempotent(self, sink):
        """Test applying a rule twice gives the same value."""
        rule = validate_rule(REQUEST_ID_RULE)
        request = RequestView.from_url("https://example.com/?id=abc")

        apply_rule(rule, request, sink)
        first = request.header("X-Request-Id")
        apply_rule(rule, request, sink)

        assert request.header("X-Request-Id") == first == "req-abc"

    def test_failure_event_contents(self, sink):
        """Test a non-match emits one event with full details."""
        request = RequestView.from_url("https://example.com/?foo=bar")

        apply_rule(validate_rule(REQUEST_ID_RULE), request, sink)

        assert len(sink.events) == 1
        event = sink.events[0]
        assert event.header_name == "X-Request-Id"
        assert event.target_value == "foo=bar"
        assert event.pattern == REQUEST_ID_RULE.pattern
        assert event.template == "req-${id}"
        assert "does not match" in event.reason
        assert event.to_dict()["target_value"] == "foo=bar"

    def test_failing_sink_still_writes_fallback(self):
        """Test an exception from the sink does not stop the fallback write."""

        def broken_sink(event: RenderFailure) -> None:
            raise RuntimeError("sink down")

        rule = validate_rule(
            HeaderRule("X-Request-Id", r"id=(?P<id>\d+)", "${id}", "query", "none")
        )
        request = RequestView.from_url("https://example.com/")

        with capture_logs() as logs:
            outcome = apply_rule(rule, request, broken_sink)

        assert outcome is ApplyOutcome.FALLBACK
        assert request.header("X-Request-Id") == "none"
        assert logs[0]["event"] == "diagnostic sink failed"
        assert logs[0]["log_level"] == "error"
        assert logs[0]["header"] == "X-Request-Id"

    def test_default_sink_logs(self):
        """Test failures are logged when no sink is given."""
        request = RequestView.from_url("https://example.com/?foo=bar")

        with capture_logs() as logs:
            apply_rule(validate_rule(REQUEST_ID_RULE), request)

        assert logs[0]["event"] == "failed to format header value"
        assert logs[0]["log_level"] == "warning"
        assert logs[0]["header"] == "X-Request-Id"
        assert logs[0]["target"] == "foo=bar"


class TestEngineConstruction:
    """Tests for HeaderRuleEngine construction."""

    def test_unknown_group_fails(self):
        """Test construction fails naming the unknown group."""
        with pytest.raises(RuleValidationError, match="'b'") as exc_info:
            HeaderRuleEngine([HeaderRule(header_name="X", pattern=r"(?P<a>\w+)", template="${b}")])

        assert exc_info.value.index == 0
        assert exc_info.value.header_name == "X"
        assert str(exc_info.value).startswith("rule error:")

    def test_first_offending_rule_reported(self):
        """Test the index of the first invalid rule is reported."""
        rules = [
            REQUEST_ID_RULE,
            HeaderRule(header_name="X-Bad", pattern="(", template="x"),
            HeaderRule(header_name="", pattern="x", template="x"),
        ]
        with pytest.raises(RuleValidationError, match="invalid regex pattern") as exc_info:
            HeaderRuleEngine(rules)

        assert exc_info.value.index == 1
        assert exc_info.value.header_name == "X-Bad"

    def test_missing_configuration(self):
        """Test a missing rule list is rejected."""
        with pytest.raises(RuleValidationError, match="plugin configuration is missing"):
            HeaderRuleEngine(None)

    def test_empty_engine(self):
        """Test an engine without rules passes requests through."""
        engine = HeaderRuleEngine([])
        request = RequestView.from_url("https://example.com/")

        assert engine.process(request) is request
        assert len(engine) == 0
        assert not engine

    def test_rules_are_immutable_sequence(self):
        """Test the rule set cannot be modified after construction."""
        engine = HeaderRuleEngine([REQUEST_ID_RULE, API_VERSION_RULE])
        assert isinstance(engine.rules, tuple)
        assert [r.header_name for r in engine.rules] == ["X-Request-Id", "X-API-Version"]

    def test_from_dict(self, sink):
        """Test engine creation from plugin-style configuration."""
        engine = HeaderRuleEngine.from_dict(
            {
                "rules": [
                    {
                        "headerName": "X-API-Version",
                        "regex": r"^/api/v(?P<version>\d+)/.*",
                        "format": "v${version}",
                        "target": "path",
                    }
                ]
            },
            sink=sink,
        )
        request = RequestView.from_url("https://example.com/api/v9/x")

        engine(request)

        assert request.header("X-API-Version") == "v9"

    def test_from_dict_none(self):
        """Test from_dict rejects missing configuration."""
        with pytest.raises(RuleValidationError, match="missing"):
            HeaderRuleEngine.from_dict(None)

    def test_from_dict_null_rules(self):
        """Test a null rules list gives an empty engine."""
        engine = HeaderRuleEngine.from_dict({"rules": None})
        assert len(engine) == 0

    def test_to_dict_exports_defaults(self):
        """Test exported rules carry the defaulted target."""
        engine = HeaderRuleEngine([HeaderRule("X", r"(?P<a>.+)", "${a}")])
        assert engine.to_dict() == {
            "rules": [
                {"headerName": "X", "regex": "(?P<a>.+)", "format": "${a}", "target": "host", "default": ""}
            ]
        }
