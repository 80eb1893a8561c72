"""Route-level access gate.

Combines authentication state, per-deal access membership and the route's
allowed-role set into a single decision: allow the requested view, or
redirect somewhere safe with a reason code the notice banner understands.

Rule order matters. Deal membership is checked before the role set so an
investor without access to a deal is told "unauthorized", never
"restricted" (which would imply they can see the deal).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Union
from urllib.parse import urlencode, urlsplit

import structlog

from src.dealroom.access.roles import ALL_ROLES, INTERNAL_ROLES, Role
from src.dealroom.schemas.auth import SessionUser

logger = structlog.get_logger(__name__)

LOGIN_PATH = "/login"
DEALS_HOME = "/deals"
INVESTOR_HOME = "/investor"

PUBLIC_PATHS = (LOGIN_PATH,)


class RedirectReason(str, Enum):
    UNAUTHORIZED = "unauthorized"
    RESTRICTED = "restricted"


# ── Decisions ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Allow:
    """The requested view may be rendered."""

    path: str


@dataclass(frozen=True)
class Redirect:
    """Send the user elsewhere, optionally explaining why."""

    path: str
    reason: RedirectReason | None = None
    origin: str | None = None

    @property
    def location(self) -> str:
        """Full redirect target including ``reason`` and ``from`` params."""
        params: dict[str, str] = {}
        if self.reason is not None:
            params["reason"] = self.reason.value
        if self.origin:
            params["from"] = self.origin
        if not params:
            return self.path
        return f"{self.path}?{urlencode(params)}"


AccessDecision = Union[Allow, Redirect]


# ── Route table ─────────────────────────────────────────────────────────────

_PARAM_RE = re.compile(r":([a-zA-Z_][a-zA-Z0-9_]*)")


def _compile(pattern: str) -> re.Pattern[str]:
    regex = _PARAM_RE.sub(lambda m: f"(?P<{m.group(1)}>[^/]+)", re.escape(pattern))
    return re.compile(f"^{regex}$")


@dataclass(frozen=True)
class RouteRule:
    """A client route pattern and the roles allowed to open it."""

    pattern: str
    roles: frozenset[Role]
    regex: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "regex", _compile(self.pattern))


@dataclass(frozen=True)
class RouteMatch:
    rule: RouteRule
    deal_id: str | None


_INVESTOR_ONLY = frozenset({Role.INVESTOR})

ROUTE_TABLE: tuple[RouteRule, ...] = (
    RouteRule("/", INTERNAL_ROLES),
    RouteRule("/deals", INTERNAL_ROLES),
    RouteRule("/analytics", INTERNAL_ROLES),
    RouteRule("/deal/:id/overview", INTERNAL_ROLES),
    RouteRule("/deal/:id/book", INTERNAL_ROLES),
    RouteRule("/deal/:id/documents", ALL_ROLES),
    RouteRule("/deal/:id/qa", ALL_ROLES),
    RouteRule("/deal/:id/timeline", ALL_ROLES),
    RouteRule("/deal/:id/commitment", _INVESTOR_ONLY),
    RouteRule("/deal/:id/closing", INTERNAL_ROLES),
    RouteRule("/deal/:id/publish", frozenset({Role.BOOKRUNNER})),
    RouteRule("/investor", _INVESTOR_ONLY),
    RouteRule("/investor/deal/:id", _INVESTOR_ONLY),
)


def _normalize_path(path: str) -> str:
    path = urlsplit(path).path or "/"
    if len(path) > 1:
        path = path.rstrip("/")
    return path


# Any path under /deal/:id or /investor/deal/:id addresses that deal, listed or not
_DEAL_PATH_RE = re.compile(r"^/(?:investor/)?deal/(?P<id>[^/]+)(?:/|$)")


def deal_id_from_path(path: str) -> str | None:
    """Deal ID addressed by a client path, or None."""
    m = _DEAL_PATH_RE.match(_normalize_path(path))
    return m.group("id") if m else None


def match_route(path: str) -> RouteMatch | None:
    """Find the route rule for a path and extract its deal ID, if any."""
    path = _normalize_path(path)
    for rule in ROUTE_TABLE:
        m = rule.regex.match(path)
        if m:
            return RouteMatch(rule=rule, deal_id=m.groupdict().get("id"))
    return None


# ── Redirect helpers ────────────────────────────────────────────────────────


def unauthorized_redirect(role: Role | None) -> str:
    """Safe landing page for a role that was denied a page."""
    if role is Role.INVESTOR:
        return INVESTOR_HOME
    return DEALS_HOME


def investor_deal_redirect(deal_id: str) -> str:
    """Investor-safe home for a deal."""
    return f"{INVESTOR_HOME}/deal/{deal_id}"


def redirect_with_reason(
    path: str, reason: RedirectReason | str, origin: str | None = None
) -> str:
    return Redirect(path=path, reason=RedirectReason(reason), origin=origin).location


# ── Gate ────────────────────────────────────────────────────────────────────


def _decide(
    user: SessionUser | None,
    requested_path: str,
    *,
    track_origin: bool = False,
) -> AccessDecision:
    """Decide whether ``user`` may open ``requested_path``.

    Args:
        user: Current session user, or None when unauthenticated.
        requested_path: Client route, optionally with a query string.
        track_origin: Attach ``from=<path>`` to reason-bearing redirects.

    Returns:
        Allow, or Redirect with the target path and reason.
    """
    path = _normalize_path(requested_path)

    if path in PUBLIC_PATHS:
        return Allow(path=path)

    if user is None:
        return Redirect(path=LOGIN_PATH)

    origin = path if track_origin else None
    match = match_route(path)
    deal_id = deal_id_from_path(path)
    role = user.role

    if deal_id is not None and role is Role.INVESTOR and deal_id not in user.deal_access:
        return Redirect(INVESTOR_HOME, RedirectReason.UNAUTHORIZED, origin)

    if match is not None and role not in match.rule.roles:
        if role is Role.INVESTOR and deal_id is not None:
            return Redirect(investor_deal_redirect(deal_id), RedirectReason.RESTRICTED, origin)
        return Redirect(unauthorized_redirect(role), RedirectReason.UNAUTHORIZED, origin)

    return Allow(path=path)


def authorize(
    user: SessionUser | None,
    requested_path: str,
    *,
    track_origin: bool = False,
) -> AccessDecision:
    """Gate a client route. See _decide() for the rules; denials are logged."""
    decision = _decide(user, requested_path, track_origin=track_origin)
    if isinstance(decision, Redirect) and decision.reason is not None:
        logger.info(
            "access.redirect",
            user_id=user.id if user else None,
            role=user.role.value if user and user.role else None,
            path=requested_path,
            redirect_to=decision.path,
            reason=decision.reason.value,
        )
    return decision


# ── Notice banner ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AccessNotice:
    title: str
    description: str


def access_notice(reason: str | None, origin: str | None = None) -> AccessNotice | None:
    """Banner text for a redirect reason, or None for unknown reasons."""
    if reason == RedirectReason.UNAUTHORIZED.value:
        return AccessNotice(
            title="Access Restricted",
            description=(
                "You don't have permission to access that page. "
                "You've been redirected to your dashboard."
            ),
        )
    if reason == RedirectReason.RESTRICTED.value:
        suffix = f" from {origin}" if origin else ""
        return AccessNotice(
            title="Page Restricted",
            description=(
                "The page you tried to access is restricted. "
                f"Redirected to the investor portal{suffix}."
            ),
        )
    return None
