"""Mutable per-request view that rules read from and write to.

The host builds one view per request. Headers are a case-insensitive
multimap; writes through ``set_header`` replace every prior value.

Example:
    request = RequestView.from_url(
        "https://api.example.com/api/v2/users?id=abc",
        headers={"User-Agent": "curl/8.0"},
    )
    request.host        # "api.example.com"
    request.query       # "id=abc"
    request.user_agent  # "curl/8.0"
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from urllib.parse import unquote, urlsplit

from multidict import CIMultiDict

HeadersInput = Mapping[str, str] | Iterable[tuple[str, str]]


@dataclass
class RequestView:
    """Request state exposed to header rules."""

    host: str = ""
    path: str = "/"
    url: str = ""
    method: str = "GET"
    scheme: str = "http"
    query: str = ""
    """Raw, undecoded query string without the leading ``?``."""

    headers: CIMultiDict[str] = field(default_factory=CIMultiDict)

    def __post_init__(self) -> None:
        if not isinstance(self.headers, CIMultiDict):
            self.headers = CIMultiDict(self.headers)

    def header(self, name: str) -> str:
        """Return the first value of a header, or an empty string."""
        return self.headers.get(name, "")

    def set_header(self, name: str, value: str) -> None:
        """Set a header, replacing any existing values."""
        self.headers[name] = value

    @property
    def user_agent(self) -> str:
        return self.header("User-Agent")

    @property
    def referer(self) -> str:
        return self.header("Referer")

    @classmethod
    def from_url(
        cls,
        url: str,
        method: str = "GET",
        headers: HeadersInput | None = None,
    ) -> RequestView:
        """Build a view from an absolute URL.

        Args:
            url: Absolute request URL.
            method: HTTP method token.
            headers: Request headers. A ``Host`` header takes precedence
                over the URL's network location.

        Returns:
            A new RequestView.
        """
        parts = urlsplit(url)
        header_map: CIMultiDict[str] = CIMultiDict(headers or {})
        return cls(
            host=header_map.get("Host") or parts.netloc,
            path=unquote(parts.path) or "/",
            url=parts.geturl(),
            method=method,
            scheme=parts.scheme,
            query=parts.query,
            headers=header_map,
        )
