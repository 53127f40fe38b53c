"""Target selectors naming which part of a request feeds a rule.

Supported selectors:
- ``host``: Request host, including port (e.g. ``example.com:8080``)
- ``path``: URL path (e.g. ``/api/v1/users``)
- ``url``: Full URL string
- ``method``: HTTP method (e.g. ``GET``)
- ``scheme``: URL scheme (e.g. ``https``)
- ``query``: Raw query string (e.g. ``page=1&limit=10``)
- ``userAgent``: User-Agent header value
- ``referer``: Referer header value
- ``header:<name>``: Any header, looked up case-insensitively

Unknown selectors resolve to the request host.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from dynheaders.request import RequestView

HEADER_TARGET_PREFIX = "header:"
DEFAULT_TARGET = "host"


class TargetKind(Enum):
    """Request facets a rule can read."""

    HOST = "host"
    PATH = "path"
    URL = "url"
    METHOD = "method"
    SCHEME = "scheme"
    QUERY = "query"
    USER_AGENT = "userAgent"
    REFERER = "referer"
    HEADER = "header"


_FIXED_TARGETS = {kind.value: kind for kind in TargetKind if kind is not TargetKind.HEADER}


@dataclass(frozen=True)
class Target:
    """A parsed target selector."""

    kind: TargetKind
    header_name: str = ""

    @classmethod
    def parse(cls, selector: str) -> Target:
        """Parse a selector string.

        Example:
            >>> Target.parse("header:X-Api-Key")
            Target(kind=<TargetKind.HEADER: 'header'>, header_name='X-Api-Key')
            >>> Target.parse("bogus").kind
            <TargetKind.HOST: 'host'>
        """
        kind = _FIXED_TARGETS.get(selector)
        if kind is not None:
            return cls(kind)
        if selector.startswith(HEADER_TARGET_PREFIX):
            return cls(TargetKind.HEADER, selector[len(HEADER_TARGET_PREFIX) :])
        return cls(TargetKind.HOST)

    def __str__(self) -> str:
        if self.kind is TargetKind.HEADER:
            return f"{HEADER_TARGET_PREFIX}{self.header_name}"
        return self.kind.value


def resolve_target(target: str | Target, request: RequestView) -> str:
    """Read the value a target selects from the request.

    Never raises; missing headers resolve to an empty string.
    """
    if isinstance(target, str):
        target = Target.parse(target)

    kind = target.kind
    if kind is TargetKind.PATH:
        return request.path
    elif kind is TargetKind.URL:
        return request.url
    elif kind is TargetKind.METHOD:
        return request.method
    elif kind is TargetKind.SCHEME:
        return request.scheme
    elif kind is TargetKind.QUERY:
        return request.query
    elif kind is TargetKind.USER_AGENT:
        return request.user_agent
    elif kind is TargetKind.REFERER:
        return request.referer
    elif kind is TargetKind.HEADER:
        return request.header(target.header_name)
    return request.host
