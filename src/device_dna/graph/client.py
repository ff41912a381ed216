from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Sequence

import httpx

from device_dna.auth.types import TokenProvider
from device_dna.graph.errors import GraphAPIError, GraphErrorCategory, error_for_status
from device_dna.graph.rate_limiter import RequestThrottle, RetryPolicy
from device_dna.utils import get_logger


logger = get_logger(__name__)

GRAPH_HOST = "https://graph.microsoft.com"
V1 = "v1.0"
BETA = "beta"

# Intune surfaces that only exist (or only return assignments) on beta.
BETA_PREFIXES: tuple[str, ...] = (
    "/deviceManagement/configurationPolicies",
    "/deviceManagement/groupPolicyConfigurations",
    "/deviceManagement/deviceHealthScripts",
    "/deviceManagement/assignmentFilters",
    "/deviceManagement/reports",
    "/deviceAppManagement/mobileApps",
)


def normalise_version(value: str) -> str:
    lowered = value.strip().lower()
    if lowered in {"v1", "v1.0", "1.0"}:
        return V1
    return lowered


def split_versioned_path(path: str) -> tuple[str | None, str]:
    """``/beta/devices`` -> ``("beta", "/devices")``; host prefixes are dropped."""

    trimmed = path.strip()
    if trimmed.startswith(GRAPH_HOST):
        trimmed = trimmed[len(GRAPH_HOST) :]
    trimmed = "/" + trimmed.lstrip("/")
    version: str | None = None
    for candidate in (V1, BETA):
        marker = f"/{candidate}/"
        if trimmed.startswith(marker):
            version = candidate
            trimmed = trimmed[len(marker) - 1 :]
            break
    if len(trimmed) > 1:
        trimmed = trimmed.rstrip("/")
    return version, trimmed


def _under(prefix: str, path: str) -> bool:
    return path == prefix or (path.startswith(prefix) and path[len(prefix)] in "/(?")


@dataclass(slots=True)
class RequestStats:
    """Running totals for one client, logged when the client closes."""

    requests: int = 0
    retries: int = 0
    failures: int = 0

    def to_log(self) -> dict[str, int]:
        return {"requests": self.requests, "retries": self.retries, "failures": self.failures}


@dataclass(slots=True)
class GraphClientConfig:
    scopes: Sequence[str]
    user_agent: str = "DeviceDNA-Python"
    api_version: str = V1
    beta_prefixes: Sequence[str] = field(default_factory=lambda: list(BETA_PREFIXES))
    page_size: int | None = None
    max_retries: int = 3
    base_retry_delay: float = 1.0
    request_budget: int = 1000
    timeout: float = 60.0
    log_requests: bool = True


def error_from_response(response: httpx.Response) -> GraphAPIError:
    """Map a failed Graph response onto the typed error hierarchy."""

    status = response.status_code
    code: str | None = None
    message: str | None = None
    request_id = response.headers.get("request-id")
    try:
        body = response.json() if response.content else {}
    except ValueError:
        body = {}
    details = body.get("error") if isinstance(body, dict) else None
    if isinstance(details, dict):
        code = details.get("code") if isinstance(details.get("code"), str) else None
        message = details.get("message") if isinstance(details.get("message"), str) else None
        inner = details.get("innerError")
        if isinstance(inner, dict) and isinstance(inner.get("request-id"), str):
            request_id = request_id or inner["request-id"]
    return error_for_status(
        status,
        message or response.text or f"Graph request failed with status {status}",
        code=code,
        retry_after=response.headers.get("Retry-After"),
        request_id=request_id,
    )


class RetryingAsyncClient(httpx.AsyncClient):
    """httpx client that paces requests and retries throttling and 5xx responses."""

    def __init__(
        self,
        *args: Any,
        retry: RetryPolicy,
        throttle: RequestThrottle,
        stats: RequestStats,
        log_requests: bool = True,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self._retry = retry
        self._throttle = throttle
        self._stats = stats
        self._log_requests = log_requests

    async def send(self, request: httpx.Request, **kwargs: Any) -> httpx.Response:
        started = time.perf_counter()
        attempt = 1
        while True:
            await self._throttle.acquire()
            self._stats.requests += 1
            try:
                response = await super().send(request, **kwargs)
            except httpx.RequestError as exc:
                if not self._retry.should_retry(attempt=attempt, status_code=None):
                    self._finished(request, started, attempt, status=None, ok=False)
                    raise GraphAPIError(
                        message=f"Network error communicating with Microsoft Graph: {exc}",
                        category=GraphErrorCategory.NETWORK,
                        inner_error=exc,
                    ) from exc
                delay = self._retry.delay_for(attempt=attempt)
            else:
                status = response.status_code
                if status < 400:
                    self._finished(request, started, attempt, status=status, ok=True)
                    return response
                if status == 429:
                    self._throttle.note_throttled()
                if not self._retry.should_retry(attempt=attempt, status_code=status):
                    self._finished(request, started, attempt, status=status, ok=False)
                    raise error_from_response(response)
                delay = self._retry.delay_for(
                    attempt=attempt,
                    retry_after=response.headers.get("Retry-After"),
                )
                await response.aclose()

            self._stats.retries += 1
            logger.info(
                "Retrying Graph request",
                method=request.method,
                url=str(request.url),
                attempt=attempt,
                delay=round(delay, 2),
            )
            await asyncio.sleep(delay)
            attempt += 1

    def _finished(
        self,
        request: httpx.Request,
        started: float,
        attempt: int,
        *,
        status: int | None,
        ok: bool,
    ) -> None:
        if not ok:
            self._stats.failures += 1
        if self._log_requests:
            logger.debug(
                "Graph request",
                method=request.method,
                url=str(request.url),
                status_code=status,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
                retries=attempt - 1,
                success=ok,
            )


class GraphClientFactory:
    """Paginated, retrying Microsoft Graph request wrapper."""

    def __init__(
        self, token_provider: TokenProvider, config: GraphClientConfig
    ) -> None:
        self._token_provider = token_provider
        self._config = config
        self._default_version = normalise_version(config.api_version)
        self._beta_prefixes = tuple(
            split_versioned_path(prefix)[1] for prefix in config.beta_prefixes
        )
        self._retry = RetryPolicy(
            max_retries=config.max_retries,
            base_delay=config.base_retry_delay,
        )
        self._throttle = RequestThrottle(limit=config.request_budget)
        self._stats = RequestStats()
        self._http_client: RetryingAsyncClient | None = None

    @property
    def stats(self) -> RequestStats:
        return self._stats

    def resolve_api_version(self, path: str, *, explicit: str | None = None) -> str:
        """API version a request to ``path`` is sent to."""

        if explicit:
            return normalise_version(explicit)
        embedded, relative = split_versioned_path(path)
        if embedded:
            return embedded
        if any(_under(prefix, relative) for prefix in self._beta_prefixes):
            return BETA
        return self._default_version

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
        headers: dict[str, str] | None = None,
        api_version: str | None = None,
    ) -> dict[str, Any]:
        url = self._absolute_url(path, api_version=api_version)
        try:
            response = await self._get_http_client().request(
                method,
                url,
                params=params,
                json=json_body,
                headers=headers,
            )
        except GraphAPIError as exc:
            exc.request_method = method.upper()
            exc.request_url = url
            raise
        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise GraphAPIError(
                message="Microsoft Graph returned a non-JSON body",
                category=GraphErrorCategory.PARSE,
                status_code=response.status_code,
                inner_error=exc,
                request_method=method.upper(),
                request_url=url,
            ) from exc
        return payload if isinstance(payload, dict) else {"value": payload}

    async def request_json_or_none(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> dict[str, Any] | None:
        """Like :meth:`request_json`, but ``None`` once the call has failed for good."""

        try:
            return await self.request_json(method, path, **kwargs)
        except GraphAPIError as exc:
            logger.warning(
                "Graph request failed",
                method=method.upper(),
                path=path,
                status_code=exc.status_code,
                category=GraphErrorCategory(exc.category).value,
                request_id=exc.request_id,
                error=str(exc),
            )
            return None

    async def iter_collection(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        page_size: int | None = None,
        api_version: str | None = None,
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Yield every record of a collection, following ``@odata.nextLink``.

        A response without a ``value`` list is yielded as a single record.
        """

        query = dict(params or {})
        top = page_size or self._config.page_size
        if top and "$top" not in query:
            query["$top"] = top

        url: str | None = self._absolute_url(path, api_version=api_version)
        page = 0
        while url:
            payload = await self.request_json(
                method,
                url,
                params=query or None,
                headers=headers,
            )
            page += 1
            records = payload.get("value")
            if not isinstance(records, list):
                yield payload
                return
            for record in records:
                if isinstance(record, dict):
                    yield record
            next_link = payload.get("@odata.nextLink")
            url = next_link if isinstance(next_link, str) and next_link else None
            # The continuation URL already carries every query option.
            query = {}
        logger.debug("Collection paged", path=path, pages=page)

    async def download(self, url: str) -> bytes:
        """Fetch a pre-signed (non-Graph) URL such as a report export blob."""

        async with httpx.AsyncClient(timeout=httpx.Timeout(self._config.timeout)) as client:
            try:
                response = await client.get(url)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise GraphAPIError(
                    message=f"Report download failed with status {exc.response.status_code}",
                    category=GraphErrorCategory.NETWORK,
                    status_code=exc.response.status_code,
                    inner_error=exc,
                ) from exc
            except httpx.RequestError as exc:
                raise GraphAPIError(
                    message=f"Report download failed: {exc}",
                    category=GraphErrorCategory.NETWORK,
                    inner_error=exc,
                ) from exc
        return response.content

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
            logger.debug(
                "Graph client closed",
                throttled=self._throttle.throttled,
                **self._stats.to_log(),
            )

    # ------------------------------------------------------------- Internals

    def _get_http_client(self) -> RetryingAsyncClient:
        if self._http_client is None:

            def bearer_auth(request: httpx.Request) -> httpx.Request:
                token = self._token_provider(self._config.scopes)
                request.headers["Authorization"] = f"Bearer {token.token}"
                return request

            self._http_client = RetryingAsyncClient(
                headers={"User-Agent": self._config.user_agent},
                auth=bearer_auth,
                retry=self._retry,
                throttle=self._throttle,
                stats=self._stats,
                log_requests=self._config.log_requests,
                timeout=httpx.Timeout(self._config.timeout, connect=10.0, pool=5.0),
            )
        return self._http_client

    def _absolute_url(self, path: str, api_version: str | None = None) -> str:
        if path.startswith(("http://", "https://")) and not path.startswith(GRAPH_HOST):
            return path
        if path.startswith(GRAPH_HOST) and api_version is None:
            return path
        _, relative = split_versioned_path(path)
        version = self.resolve_api_version(path, explicit=api_version)
        return f"{GRAPH_HOST}/{version}{relative}"


__all__ = [
    "BETA",
    "BETA_PREFIXES",
    "GraphClientConfig",
    "GraphClientFactory",
    "RequestStats",
    "V1",
    "error_from_response",
    "split_versioned_path",
]
