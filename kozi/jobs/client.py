# kozi/jobs/client.py
"""
Client for the upstream jobs API.

- Logs in with the configured credentials and caches the bearer token
  (TokenCache) until shortly before it expires.
- On a 401 with a token, invalidates the cache, logs in again and retries once.
- Every outbound call is bounded by a timeout; nothing raises past fetch_jobs.
"""
from __future__ import annotations

import asyncio
import functools
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional
from urllib.parse import urlsplit, urlunsplit

import requests

from kozi.exceptions import JobsAPIError, JobsAuthError
from kozi.jobs.normalize import NormalizedJob, normalize_jobs
from kozi.settings import SETTINGS

logger = logging.getLogger(__name__)


@dataclass
class AuthToken:
    value: str
    expires_at: float

    def usable(self, now: float, margin_s: float) -> bool:
        return now <= self.expires_at - margin_s


class TokenCache:
    """
    Holds at most one token. Acquisition runs under an asyncio.Lock with a
    re-check, so concurrent callers that find the cache empty share a single
    login instead of each starting one.
    """

    def __init__(self, margin_s: float, clock: Callable[[], float] = time.time) -> None:
        self.margin_s = margin_s
        self.clock = clock
        self._token: Optional[AuthToken] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> str:
        if self._lock.locked():
            return "refreshing"
        return "cached" if self._token is not None else "no_token"

    def peek(self) -> Optional[str]:
        t = self._token
        if t is not None and t.usable(self.clock(), self.margin_s):
            return t.value
        return None

    async def get(self, login: Callable[[], Any]) -> str:
        tok = self.peek()
        if tok:
            return tok
        async with self._lock:
            tok = self.peek()  # someone else may have refreshed while we waited
            if tok:
                return tok
            self._token = await login()
            return self._token.value

    def invalidate(self, failed_value: Optional[str] = None) -> None:
        """Drop the cached token, unless it was already replaced by a fresh one."""
        if self._token is None:
            return
        if failed_value is None or self._token.value == failed_value:
            self._token = None


class JobsClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        login_url: Optional[str] = None,
        email: Optional[str] = None,
        password: Optional[str] = None,
        role_id: Optional[str] = None,
        timeout_s: Optional[float] = None,
        token_ttl_s: Optional[float] = None,
        token_margin_s: Optional[float] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.base_url = base_url if base_url is not None else SETTINGS.jobs_api_url
        self.login_url = login_url or SETTINGS.jobs_login_url or _default_login_url(self.base_url)
        self.email = email if email is not None else SETTINGS.jobs_email
        self.password = password if password is not None else SETTINGS.jobs_password
        self.role_id = role_id if role_id is not None else SETTINGS.jobs_role_id
        self.timeout_s = timeout_s or SETTINGS.jobs_timeout_s
        self.token_ttl_s = token_ttl_s or SETTINGS.token_ttl_s
        self.clock = clock
        margin = SETTINGS.token_margin_s if token_margin_s is None else token_margin_s
        self.tokens = TokenCache(margin, clock=clock)
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json"})

    @property
    def has_credentials(self) -> bool:
        return bool(self.email and self.password)

    # ---------- transport ----------
    async def _call(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Run a blocking requests call in the executor, bounded by timeout_s."""
        loop = asyncio.get_running_loop()
        fn = functools.partial(
            self._session.request, method, url, timeout=self.timeout_s, **kwargs
        )
        try:
            return await asyncio.wait_for(loop.run_in_executor(None, fn), timeout=self.timeout_s)
        except asyncio.TimeoutError as e:
            raise requests.Timeout(f"{method} {url} exceeded {self.timeout_s:g}s") from e

    async def _login(self) -> AuthToken:
        logger.info("Jobs API: logging in as %s", self.email)
        resp = await self._call(
            "POST",
            self.login_url,
            json={"email": self.email, "password": self.password, "role_id": self.role_id},
        )
        if not (200 <= resp.status_code < 300):
            raise JobsAuthError(resp.status_code, "login rejected")
        try:
            body = resp.json()
        except ValueError as e:
            raise JobsAuthError(resp.status_code, "login returned non-JSON body") from e
        value = _token_from(body)
        if not value:
            raise JobsAuthError(resp.status_code, "login response has no token")
        return AuthToken(value=value, expires_at=self.clock() + self.token_ttl_s)

    async def _get_jobs(self, token: Optional[str]) -> requests.Response:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        return await self._call("GET", self.base_url, headers=headers)

    # ---------- public ----------
    async def fetch_raw(self) -> Any:
        """GET the jobs payload, with one re-login + retry on 401. Raises on failure."""
        if not self.base_url:
            raise JobsAPIError(None, "JOBS_API_URL is not set")

        token = await self.tokens.get(self._login) if self.has_credentials else None
        resp = await self._get_jobs(token)

        if resp.status_code == 401 and token:
            logger.warning("Jobs API: 401 with cached token; refreshing and retrying once.")
            self.tokens.invalidate(token)
            token = await self.tokens.get(self._login)
            resp = await self._get_jobs(token)

        if not (200 <= resp.status_code < 300):
            raise JobsAPIError(resp.status_code, getattr(resp, "reason", "") or "request failed")
        try:
            return resp.json()
        except ValueError as e:
            raise JobsAPIError(resp.status_code, "response is not JSON") from e

    async def fetch_jobs(self, filters: Optional[Mapping[str, Any]] = None) -> List[NormalizedJob]:
        """Normalized, filtered, newest-first jobs. Returns [] on any failure."""
        try:
            payload = await self.fetch_raw()
        except JobsAPIError as e:
            logger.error("Jobs fetch failed: %s", e)
            return []
        except requests.RequestException as e:
            logger.error("Jobs fetch network failure: %s", e)
            return []

        jobs = normalize_jobs(payload, filters)
        logger.info("Jobs fetched: %d after filters %s", len(jobs), dict(filters or {}))
        return jobs


def _token_from(body: Any) -> Optional[str]:
    if not isinstance(body, Mapping):
        return None
    for key in ("token", "access_token", "accessToken"):
        if body.get(key):
            return str(body[key])
    data = body.get("data")
    if isinstance(data, Mapping):
        return _token_from(data)
    return None


def _default_login_url(base_url: str) -> str:
    """https://host/api/jobs -> https://host/api/login"""
    if not base_url:
        return ""
    parts = urlsplit(base_url)
    path = parts.path.rstrip("/")
    parent = path.rsplit("/", 1)[0] if "/" in path else ""
    return urlunsplit((parts.scheme, parts.netloc, f"{parent}/login", "", ""))
