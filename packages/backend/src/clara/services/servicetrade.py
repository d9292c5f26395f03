"""ServiceTrade API client with a per-company session cache.

Learn: ServiceTrade authenticates with username/password (POST /auth) and
hands back an opaque session token that every later call carries as the
PHPSESSID cookie. Logging in is slow and rate-limited upstream, so:

- one session per company is cached in a SessionCache and shared by all
  callers in this process;
- sessions are refreshed reactively: a 401/404 from ServiceTrade evicts the
  cached token, and request() logs in again and retries the call once.

State per company:  no-session --login--> has-session
                    has-session --401/404 or logout--> no-session
"""

from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
import structlog

from clara.logging import mask_email

logger = structlog.get_logger()

SESSION_COOKIE = "PHPSESSID"
AUTH_PATH = "/auth"

# 401 = session expired, 404 = session unknown to ServiceTrade
STALE_SESSION_STATUSES = (401, 404)

# First call plus at most one retry after re-login.
MAX_ATTEMPTS = 2


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str

    @property
    def complete(self) -> bool:
        return bool(self.username and self.password)


@dataclass(frozen=True)
class ServiceTradeSession:
    auth_token: str
    user: Optional[dict] = None


@dataclass
class ServiceTradeResponse:
    """Outcome of a proxied ServiceTrade call."""

    ok: bool
    status: int
    data: Any = None
    messages: dict = field(default_factory=dict)

    @classmethod
    def not_authenticated(cls) -> "ServiceTradeResponse":
        return cls(
            ok=False,
            status=401,
            data=None,
            messages={"error": ["ServiceTrade not authenticated"]},
        )

    @classmethod
    def unavailable(cls) -> "ServiceTradeResponse":
        return cls(
            ok=False,
            status=502,
            data=None,
            messages={"error": ["ServiceTrade unavailable"]},
        )


class SessionCache:
    """company_id → ServiceTrade session token. Process-local, never persisted."""

    def __init__(self):
        self._tokens: dict[str, str] = {}

    def get(self, company_id) -> Optional[str]:
        return self._tokens.get(str(company_id))

    def set(self, company_id, token: str) -> None:
        self._tokens[str(company_id)] = token

    def evict(self, company_id) -> None:
        self._tokens.pop(str(company_id), None)

    def clear(self) -> None:
        self._tokens.clear()

    def __len__(self) -> int:
        return len(self._tokens)

    def __contains__(self, company_id: object) -> bool:
        return str(company_id) in self._tokens


def _parse_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {}


def _unwrap(body: Any) -> Any:
    """ServiceTrade wraps payloads as {"data": ..., "messages": ...}."""
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


class ServiceTradeClient:
    """Per-company ServiceTrade session manager and request proxy."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str,
        sessions: Optional[SessionCache] = None,
    ):
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.sessions = sessions if sessions is not None else SessionCache()

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{path}"

    @staticmethod
    def _cookie(token: str) -> dict[str, str]:
        return {"Cookie": f"{SESSION_COOKIE}={token}"}

    # ─── Session lifecycle ──────────────────────────────

    async def login(
        self, company_id, username: str, password: str
    ) -> Optional[ServiceTradeSession]:
        """POST /auth; cache and return the session, or None on any failure."""
        if not username or not password:
            logger.warning("servicetrade.login_missing_credentials", company_id=str(company_id))
            return None

        try:
            response = await self.http.post(
                self._url(AUTH_PATH),
                json={"username": username, "password": password},
            )
        except httpx.HTTPError as e:
            logger.warning(
                "servicetrade.login_error", company_id=str(company_id), error=str(e)
            )
            return None

        body = _parse_body(response)
        data = _unwrap(body)
        data = data if isinstance(data, dict) else {}

        if response.is_success and data.get("authenticated") and data.get("authToken"):
            self.sessions.set(company_id, data["authToken"])
            logger.info(
                "servicetrade.login_success",
                company_id=str(company_id),
                username=mask_email(username),
            )
            return ServiceTradeSession(auth_token=data["authToken"], user=data.get("user"))

        if response.status_code == 403:
            logger.warning("servicetrade.login_invalid_credentials", company_id=str(company_id))
        elif response.status_code == 400:
            logger.warning("servicetrade.login_missing_fields", company_id=str(company_id))
        else:
            logger.warning(
                "servicetrade.login_failed",
                company_id=str(company_id),
                status=response.status_code,
                messages=body.get("messages") if isinstance(body, dict) else None,
            )
        return None

    async def get_session(
        self, company_id, token: Optional[str] = None
    ) -> Optional[ServiceTradeSession]:
        """Validate the cached (or given) token with GET /auth."""
        auth_token = token or self.sessions.get(company_id)
        if not auth_token:
            return None

        try:
            response = await self.http.get(
                self._url(AUTH_PATH), headers=self._cookie(auth_token)
            )
        except httpx.HTTPError as e:
            logger.warning(
                "servicetrade.session_check_error",
                company_id=str(company_id),
                error=str(e),
            )
            return None

        data = _unwrap(_parse_body(response))
        data = data if isinstance(data, dict) else {}

        if response.status_code == 200 and data.get("authenticated"):
            return ServiceTradeSession(
                auth_token=data.get("authToken") or auth_token,
                user=data.get("user"),
            )

        if response.status_code in STALE_SESSION_STATUSES:
            self.sessions.evict(company_id)
            logger.info(
                "servicetrade.session_stale",
                company_id=str(company_id),
                status=response.status_code,
            )
        return None

    async def ensure_session(
        self, company_id, credentials: Optional[Credentials] = None
    ) -> Optional[ServiceTradeSession]:
        """A live cached session, else a fresh login when credentials are given."""
        session = await self.get_session(company_id)
        if session is not None:
            return session

        if credentials is None or not credentials.complete:
            return None
        return await self.login(company_id, credentials.username, credentials.password)

    async def logout(self, company_id, token: Optional[str] = None) -> None:
        """Best-effort DELETE /auth, then always forget the local session."""
        auth_token = token or self.sessions.get(company_id)
        if not auth_token:
            return

        try:
            await self.http.delete(
                self._url(AUTH_PATH), headers=self._cookie(auth_token)
            )
        except httpx.HTTPError as e:
            logger.warning(
                "servicetrade.logout_error", company_id=str(company_id), error=str(e)
            )
        finally:
            self.sessions.evict(company_id)
        logger.info("servicetrade.session_closed", company_id=str(company_id))

    # ─── Proxied calls ──────────────────────────────────

    async def request(
        self,
        company_id,
        method: str,
        path: str,
        body: Any = None,
        credentials: Optional[Credentials] = None,
    ) -> ServiceTradeResponse:
        """Call ServiceTrade as the company, re-logging in once on a stale session.

        Without a session (and no credentials to get one) this returns a
        synthetic 401 result without touching the network. When the call
        comes back 401/404 and credentials were given, the session is
        dropped, a new login is attempted and the call is retried once. If
        that login fails, the original response is returned unchanged.
        """
        session = await self.ensure_session(company_id, credentials)
        if session is None:
            return ServiceTradeResponse.not_authenticated()

        url = self._url(path)
        method = method.upper()
        response = None

        for attempt in range(MAX_ATTEMPTS):
            try:
                response = await self._send(method, url, session.auth_token, body)
            except httpx.HTTPError as e:
                logger.warning(
                    "servicetrade.request_error",
                    company_id=str(company_id),
                    method=method,
                    path=path,
                    error=str(e),
                )
                return ServiceTradeResponse.unavailable()

            is_last = attempt == MAX_ATTEMPTS - 1
            if is_last or credentials is None:
                break
            if response.status_code not in STALE_SESSION_STATUSES:
                break

            self.sessions.evict(company_id)
            session = await self.ensure_session(company_id, credentials)
            if session is None:
                break
            logger.info(
                "servicetrade.request_retry",
                company_id=str(company_id),
                method=method,
                path=path,
                status=response.status_code,
            )

        return self._to_result(response)

    async def _send(
        self, method: str, url: str, token: str, body: Any
    ) -> httpx.Response:
        kwargs: dict[str, Any] = {"headers": self._cookie(token)}
        if isinstance(body, (str, bytes)):
            kwargs["content"] = body
            kwargs["headers"]["Content-Type"] = "application/json"
        elif body is not None:
            kwargs["json"] = body
        return await self.http.request(method, url, **kwargs)

    @staticmethod
    def _to_result(response: httpx.Response) -> ServiceTradeResponse:
        body = _parse_body(response)
        messages = body.get("messages") if isinstance(body, dict) else None
        return ServiceTradeResponse(
            ok=response.is_success,
            status=response.status_code,
            data=_unwrap(body),
            messages=messages or {},
        )
