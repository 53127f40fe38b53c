"""dynheaders - Dynamic request headers from regex rules.

Sets request headers from values extracted out of the incoming request,
matched against a regular expression with named capture groups and
rendered through a ${name} template.

Features:
- Targets: host, path, url, method, scheme, query, userAgent, referer,
  header:<name>
- Load-time validation of patterns and template placeholders
- Fallback value when a pattern does not match
- Rules run in order; later rules can read headers set by earlier ones
- aiohttp middleware for reverse-proxy hosts

Usage:
    from dynheaders import HeaderRule, HeaderRuleEngine, RequestView

    engine = HeaderRuleEngine([
        HeaderRule(
            header_name="X-API-Version",
            pattern=r"^/api/v(?P<version>\\d+)/.*",
            template="v${version}",
            target="path",
        ),
    ])

    request = RequestView.from_url("https://example.com/api/v2/users")
    engine.process(request)
    print(request.header("X-API-Version"))  # v2

Configuration:
    Rules can also be configured via YAML:

    dynamic_headers:
      rules:
        - headerName: X-Request-Id
          regex: "id=(?P<id>[a-f0-9-]+)"
          format: "req-${id}"
          target: query
          default: unknown-request
"""

__version__ = "0.1.0"

from dynheaders.config import (
    DynamicHeadersConfig,
    DynamicHeadersSettings,
    HeaderRuleConfig,
    clear_settings,
    get_settings,
    load_config_from_file,
)
from dynheaders.engine import (
    ApplyOutcome,
    DiagnosticSink,
    HeaderRuleEngine,
    RenderFailure,
    apply_rule,
)
from dynheaders.request import RequestView
from dynheaders.rules import (
    CompiledRule,
    HeaderRule,
    RuleValidationError,
    validate_rule,
)
from dynheaders.targets import Target, TargetKind, resolve_target
from dynheaders.template import (
    PLACEHOLDER_PATTERN,
    NoMatchError,
    render_with_groups,
)

__all__ = [
    "__version__",
    # Engine
    "HeaderRuleEngine",
    "ApplyOutcome",
    "RenderFailure",
    "DiagnosticSink",
    "apply_rule",
    # Rules
    "HeaderRule",
    "CompiledRule",
    "RuleValidationError",
    "validate_rule",
    # Targets
    "Target",
    "TargetKind",
    "resolve_target",
    # Templates
    "PLACEHOLDER_PATTERN",
    "NoMatchError",
    "render_with_groups",
    # Request
    "RequestView",
    # Configuration
    "DynamicHeadersConfig",
    "DynamicHeadersSettings",
    "HeaderRuleConfig",
    "get_settings",
    "clear_settings",
    "load_config_from_file",
]
