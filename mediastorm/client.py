"""
Write backends
==============

The dispatch engine only knows one capability: ``await backend.put(path, body,
headers)``, which returns a :class:`WriteResult` or raises a :class:`WriteError`
tagged with the stage that failed. Two variants are provided:

- :class:`HttpWriteBackend` sends a raw ``PUT <endpoint>/<path>`` with aiohttp.
- :class:`S3WriteBackend` calls ``PutObject`` through boto3.

Both are async context managers; open them inside the running event loop.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import aiohttp
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError
from yarl import URL

from .config import ConfigError, LoadSpec, join_url

logger = logging.getLogger(__name__)

KEEPALIVE_TIMEOUT = 30.0


# ----------------------------- Results and errors -----------------------------

@dataclass(frozen=True)
class WriteResult:
    status: int
    summary: str


class WriteError(Exception):
    """A single write failed. ``stage`` names where it failed."""

    stage = "PutObject"

    def __init__(self, cause: BaseException):
        # some causes, asyncio.TimeoutError among them, stringify to ""
        super().__init__(str(cause) or type(cause).__name__)
        self.cause = cause


class BuildError(WriteError):
    stage = "NewRequest"


class SendError(WriteError):
    stage = "PutObject"


class ReadError(WriteError):
    stage = "Reading Response"


class WriteBackend(Protocol):
    async def __aenter__(self) -> "WriteBackend": ...

    async def __aexit__(self, *exc_info) -> None: ...

    async def put(self, path: str, body: bytes, headers: Dict[str, str]) -> WriteResult: ...


# ----------------------------- HTTP -----------------------------

class HttpWriteBackend:
    def __init__(
        self,
        endpoint: str,
        pool_size: int = 100,
        insecure: bool = False,
        timeout: Optional[float] = None,
    ):
        self.endpoint = endpoint
        self.pool_size = pool_size
        self.insecure = insecure
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "HttpWriteBackend":
        connector = aiohttp.TCPConnector(
            limit=0,
            limit_per_host=self.pool_size,
            keepalive_timeout=KEEPALIVE_TIMEOUT,
            ssl=False if self.insecure else True,
        )
        self._session = aiohttp.ClientSession(
            connector=connector,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        )
        logger.debug("opened %s (pool %d, timeout %s)", self.endpoint, self.pool_size, self.timeout)
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    def _build(self, path: str) -> URL:
        url = URL(join_url(self.endpoint, path))
        if not url.is_absolute():
            raise ValueError(f"endpoint is not an absolute URL: {url}")
        return url

    async def put(self, path: str, body: bytes, headers: Dict[str, str]) -> WriteResult:
        if self._session is None:
            raise RuntimeError("HttpWriteBackend used outside 'async with'")
        try:
            url = self._build(path)
        except Exception as e:
            raise BuildError(e) from e

        try:
            resp = await self._session.put(url, data=body, headers=headers)
        except Exception as e:
            raise SendError(e) from e

        try:
            content = await resp.read()
        except Exception as e:
            raise ReadError(e) from e
        finally:
            resp.release()
        return WriteResult(status=resp.status, summary=content.decode("utf-8", errors="replace"))


# ----------------------------- S3 -----------------------------

class S3WriteBackend:
    """PutObject through boto3.

    boto3 is blocking, so each call runs on a private thread pool sized by the
    pool hint; that pool and botocore's connection pool are the only limit on
    concurrent writes.
    """

    def __init__(
        self,
        endpoint: str,
        bucket: str,
        region: Optional[str] = None,
        host: Optional[str] = None,
        pool_size: int = 100,
        insecure: bool = False,
        timeout: Optional[float] = None,
        session: Optional[Any] = None,
    ):
        self.bucket = bucket
        self.host = host
        self.pool_size = pool_size
        try:
            session = session or boto3.session.Session(region_name=region)
            credentials = session.get_credentials()
        except BotoCoreError as e:
            raise ConfigError(f"unable to resolve AWS credentials for the s3 backend: {e}") from e
        if credentials is None:
            raise ConfigError("unable to resolve AWS credentials for the s3 backend")

        options: Dict[str, Any] = {
            "max_pool_connections": pool_size,
            "user_agent_extra": "MediaStorm",
            "retries": {"max_attempts": 0},
        }
        if timeout is not None:
            options.update(connect_timeout=timeout, read_timeout=timeout)
        self._client = session.client(
            "s3",
            endpoint_url=endpoint,
            region_name=region or session.region_name or "us-east-1",
            verify=not insecure,
            config=Config(**options),
        )
        if host:
            self._client.meta.events.register("before-sign.s3.PutObject", self._override_host)
        self._executor: Optional[ThreadPoolExecutor] = None

    def _override_host(self, request, **kwargs):
        del request.headers["Host"]
        request.headers["Host"] = self.host

    async def __aenter__(self) -> "S3WriteBackend":
        self._executor = ThreadPoolExecutor(max_workers=self.pool_size, thread_name_prefix="mediastorm-s3")
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    async def put(self, path: str, body: bytes, headers: Dict[str, str]) -> WriteResult:
        if self._executor is None:
            raise RuntimeError("S3WriteBackend used outside 'async with'")
        try:
            params = {"Bucket": self.bucket, "Key": path, "Body": body}
            request_id = headers.get("X-Request-ID")
            if request_id is not None:
                params["Metadata"] = {"request-id": str(request_id)}
        except Exception as e:
            raise BuildError(e) from e

        loop = asyncio.get_running_loop()
        try:
            resp = await loop.run_in_executor(
                self._executor, functools.partial(self._client.put_object, **params)
            )
        except Exception as e:
            raise SendError(e) from e

        try:
            status = resp["ResponseMetadata"]["HTTPStatusCode"]
            summary = f"ETag {resp.get('ETag', '')}"
        except Exception as e:
            raise ReadError(e) from e
        return WriteResult(status=status, summary=summary)


def make_backend(spec: LoadSpec) -> WriteBackend:
    """Pick the backend variant named by the spec. May raise ConfigError."""
    if spec.backend == "s3":
        return S3WriteBackend(
            spec.endpoint,
            spec.bucket,
            region=spec.region,
            host=spec.host,
            pool_size=spec.pool_size,
            insecure=spec.insecure,
            timeout=spec.timeout,
        )
    return HttpWriteBackend(
        spec.endpoint,
        pool_size=spec.pool_size,
        insecure=spec.insecure,
        timeout=spec.timeout,
    )
