"""Route table and server-side credential injection.

Routes are plain data: a local prefix, the upstream base URL and a
``CredentialStrategy`` describing how the upstream expects its secret. A
single function, ``inject_credentials``, interprets the strategy, so neither
the table nor its tests need access to the settings object.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Sequence
from urllib.parse import quote


class CredentialKind(str, Enum):
    """How a route's upstream receives its credential."""

    HEADER = "header"
    QUERY_PARAM = "query_param"
    NONE = "none"


@dataclass(frozen=True)
class CredentialStrategy:
    """Tagged credential strategy.

    Attributes:
        kind: Injection mechanism.
        secret_name: Name of the server-side secret (a ``CredentialSettings``
            field) the strategy needs.
        param: Query parameter name for ``QUERY_PARAM`` strategies.
    """

    kind: CredentialKind
    secret_name: str | None = None
    param: str | None = None

    @classmethod
    def bearer_header(cls, secret_name: str) -> "CredentialStrategy":
        return cls(CredentialKind.HEADER, secret_name=secret_name)

    @classmethod
    def query_param(cls, param: str, secret_name: str) -> "CredentialStrategy":
        return cls(CredentialKind.QUERY_PARAM, secret_name=secret_name, param=param)

    @classmethod
    def none(cls) -> "CredentialStrategy":
        return cls(CredentialKind.NONE)


@dataclass(frozen=True)
class Route:
    """A proxied upstream reachable under a local path prefix."""

    prefix: str
    target: str
    description: str
    credential: CredentialStrategy
    cacheable: bool = False


@dataclass(frozen=True)
class RouteMatch:
    """A route together with the request path left after its prefix."""

    route: Route
    remainder: str


DEFAULT_ROUTES: tuple[Route, ...] = (
    Route(
        prefix="/api/kbo",
        target="https://cbeapi.be/api",
        description="KBO/CBE - Belgian company data",
        credential=CredentialStrategy.bearer_header("cbeapi_token"),
        cacheable=True,
    ),
    Route(
        prefix="/api/gnews",
        target="https://gnews.io/api/v4",
        description="GNews - news articles",
        credential=CredentialStrategy.query_param("apikey", "gnews_api_key"),
    ),
    Route(
        prefix="/api/finnhub",
        target="https://finnhub.io/api/v1",
        description="Finnhub - market data",
        credential=CredentialStrategy.query_param("token", "finnhub_key"),
    ),
)


class RouteTable:
    """Immutable prefix lookup over a small set of routes."""

    def __init__(self, routes: Sequence[Route] = DEFAULT_ROUTES) -> None:
        prefixes = [route.prefix for route in routes]
        if len(set(prefixes)) != len(prefixes):
            raise ValueError("route prefixes must be unique")
        self._routes = tuple(routes)
        # Longest prefix first so nested prefixes resolve to the most specific route
        self._by_length = tuple(sorted(self._routes, key=lambda r: len(r.prefix), reverse=True))

    def __iter__(self):
        return iter(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    def prefixes(self) -> list[str]:
        return [route.prefix for route in self._routes]

    def match(self, path: str) -> RouteMatch | None:
        """Find the most specific route for ``path``.

        A prefix matches only on a path segment boundary, so ``/api/kbo``
        matches ``/api/kbo`` and ``/api/kbo/company/1`` but not ``/api/kbox``.

        Args:
            path: Request path without query string.

        Returns:
            The match with the remaining path, or None.
        """
        for route in self._by_length:
            if path == route.prefix or path.startswith(route.prefix + "/"):
                return RouteMatch(route=route, remainder=path[len(route.prefix):])
        return None


def build_target_url(match: RouteMatch, query: str = "") -> str:
    """Join the upstream base, the path remainder and the original query."""

    url = match.route.target + match.remainder
    if query:
        url = f"{url}?{query}"
    return url


def inject_credentials(
    strategy: CredentialStrategy,
    url: str,
    headers: Mapping[str, str],
    secrets: Mapping[str, str | None],
    *,
    accept_language: str = "nl",
) -> tuple[str, dict[str, str]]:
    """Apply a credential strategy to an outbound request.

    A secret that is not configured is skipped silently; the request goes
    out without it and the upstream decides how to respond.

    Args:
        strategy: The route's credential strategy.
        url: Fully built upstream URL.
        headers: Outbound headers (not mutated).
        secrets: Secret values keyed by setting name.
        accept_language: Accept-Language value for header strategies.

    Returns:
        Tuple of (url, headers) to send upstream.
    """

    out_headers = dict(headers)
    secret = secrets.get(strategy.secret_name) if strategy.secret_name else None

    if strategy.kind is CredentialKind.HEADER:
        if secret:
            out_headers["Authorization"] = f"Bearer {secret}"
        out_headers["Accept-Language"] = accept_language
    elif strategy.kind is CredentialKind.QUERY_PARAM and secret:
        separator = "&" if "?" in url else "?"
        url = f"{url}{separator}{strategy.param}={quote(secret, safe='')}"

    return url, out_headers
