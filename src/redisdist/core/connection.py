"""Lazily connected, shared redis handles.

`RedisConnection` serves blocking callers from any number of threads and
`AsyncRedisConnection` serves coroutines on one event loop. Both connect on
first use, perform exactly one physical connect per attempt no matter how many
callers arrive at once, and publish the client only once it is fully usable.
A failed attempt publishes nothing, so the next caller simply tries again.
"""

from __future__ import annotations

import asyncio
import threading
from concurrent.futures import Future
from typing import Any, Dict, Hashable, List, Optional, Tuple
from urllib.parse import urlparse

import redis
import redis.asyncio as aioredis
from redis.asyncio.retry import Retry as AsyncRetry
from redis.backoff import ExponentialBackoff
from redis.connection import parse_url
from redis.exceptions import RedisError
from redis.retry import Retry

from redisdist.core.settings import RedisSettings, RetrySettings
from redisdist.utils.logging import get_logger


logger = get_logger(__name__)


def _describe_endpoint(url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme == "unix":
        return parsed.path
    return f"{parsed.hostname or 'localhost'}:{parsed.port or 6379}"


def _build_retry(retry_cls: Any, policy: Optional[RetrySettings]) -> Any:
    if policy is None:
        return None
    return retry_cls(
        ExponentialBackoff(cap=policy.backoff_cap, base=policy.backoff_base),
        policy.retries,
    )


class _ConnectionBase:
    """Configuration shared by the blocking and the asyncio connection."""

    def __init__(self, settings: Optional[RedisSettings], retry: Any) -> None:
        self.settings = settings or RedisSettings()
        self._retry = retry
        self._endpoint = _describe_endpoint(self.settings.url)
        if self.settings.default_database is not None and self.settings.default_database > -1:
            self._default_db = self.settings.default_database
        else:
            self._default_db = int(parse_url(self.settings.url).get("db", 0))
        self._closed = False

    @property
    def default_database(self) -> int:
        return self._default_db

    @property
    def closed(self) -> bool:
        return self._closed

    def _resolve_db(self, db: int) -> int:
        return db if db > -1 else self._default_db

    def _pool_options(self) -> Dict[str, Any]:
        options = self.settings.connection_options()
        if self._retry is not None:
            options["retry"] = self._retry
        return options

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError(f"{type(self).__name__} is closed")

    @staticmethod
    def _server_key(client: Any, host: str, port: int) -> Optional[Tuple[str, str, int]]:
        kwargs = client.connection_pool.connection_kwargs
        if kwargs.get("host") == host and int(kwargs.get("port", 6379)) == port:
            return None
        return ("server", host, port)


class RedisConnection(_ConnectionBase):
    """Blocking connection manager around a shared `redis.Redis` client."""

    def __init__(self, settings: Optional[RedisSettings] = None, *, retry: Optional[Retry] = None) -> None:
        settings = settings or RedisSettings()
        super().__init__(settings, retry or _build_retry(Retry, settings.retry))
        self._lock = threading.Lock()
        self._client: Optional[redis.Redis] = None
        self._connecting: Optional["Future[redis.Redis]"] = None
        self._extra: Dict[Hashable, redis.Redis] = {}

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def _create_client(self, db: int, **overrides: Any) -> redis.Redis:
        pool = redis.ConnectionPool.from_url(self.settings.url, **self._pool_options())
        pool.connection_kwargs.update(db=db, **overrides)
        return redis.Redis(connection_pool=pool)

    def _open(self) -> redis.Redis:
        client = self._create_client(self._default_db)
        if self.settings.abort_connect:
            try:
                client.ping()
            except RedisError:
                self._dispose(client)
                raise
        logger.info("Connected to redis at %s (db %d)", self._endpoint, self._default_db)
        return client

    @staticmethod
    def _dispose(client: redis.Redis) -> None:
        client.close()
        client.connection_pool.disconnect()

    def _connect(self) -> redis.Redis:
        client = self._client
        if client is not None:
            return client
        with self._lock:
            self._check_open()
            if self._client is not None:
                return self._client
            attempt = self._connecting
            owner = attempt is None
            if owner:
                attempt = self._connecting = Future()
        if not owner:
            # Waiters share the outcome of the attempt in flight, success or failure.
            return attempt.result()

        try:
            client = self._open()
        except BaseException as exc:
            with self._lock:
                self._connecting = None
            attempt.set_exception(exc)
            raise
        with self._lock:
            self._connecting = None
            closed = self._closed
            if not closed:
                self._client = client
        if closed:
            self._dispose(client)
            error = RuntimeError(f"{type(self).__name__} is closed")
            attempt.set_exception(error)
            raise error
        attempt.set_result(client)
        return client

    def _extra_client(self, key: Hashable, db: int, **overrides: Any) -> redis.Redis:
        client = self._extra.get(key)
        if client is not None:
            return client
        with self._lock:
            self._check_open()
            client = self._extra.get(key)
            if client is None:
                client = self._create_client(db, **overrides)
                self._extra[key] = client
            return client

    def get_database(self, db: int = -1) -> redis.Redis:
        """Return the client for `db`, connecting on first use."""
        client = self._connect()
        db = self._resolve_db(db)
        if db == self._default_db:
            return client
        return self._extra_client(("db", db), db)

    def get_batch(self, db: int = -1) -> redis.client.Pipeline:
        """Commands queued on the returned pipeline are sent as one unit on `execute()`."""
        return self.get_database(db).pipeline(transaction=False)

    def get_subscriber(self) -> redis.client.PubSub:
        return self._connect().pubsub()

    def get_server(self, host: Optional[str] = None, port: Optional[int] = None) -> redis.Redis:
        client = self._connect()
        if host is None:
            return client
        port = port or 6379
        key = self._server_key(client, host, port)
        if key is None:
            return client
        return self._extra_client(key, self._default_db, host=host, port=port)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            clients: List[redis.Redis] = [c for c in (self._client, *self._extra.values()) if c is not None]
            self._client = None
            self._extra.clear()
        for client in clients:
            self._dispose(client)
        if clients:
            logger.info("Closed redis connection to %s", self._endpoint)

    def __enter__(self) -> "RedisConnection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _consume_outcome(task: "asyncio.Future[Any]") -> None:
    # Every waiter may have been cancelled; keep asyncio from reporting the error as unretrieved.
    if not task.cancelled():
        task.exception()


class AsyncRedisConnection(_ConnectionBase):
    """Asyncio connection manager around a shared `redis.asyncio.Redis` client."""

    def __init__(
        self, settings: Optional[RedisSettings] = None, *, retry: Optional[AsyncRetry] = None
    ) -> None:
        settings = settings or RedisSettings()
        super().__init__(settings, retry or _build_retry(AsyncRetry, settings.retry))
        self._client: Optional[aioredis.Redis] = None
        self._connecting: Optional["asyncio.Task[aioredis.Redis]"] = None
        self._extra: Dict[Hashable, aioredis.Redis] = {}

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def _create_client(self, db: int, **overrides: Any) -> aioredis.Redis:
        pool = aioredis.ConnectionPool.from_url(self.settings.url, **self._pool_options())
        pool.connection_kwargs.update(db=db, **overrides)
        return aioredis.Redis(connection_pool=pool)

    async def _open(self) -> aioredis.Redis:
        client = self._create_client(self._default_db)
        if self.settings.abort_connect:
            try:
                await client.ping()
            except RedisError:
                await self._dispose(client)
                raise
        logger.info("Connected to redis at %s (db %d)", self._endpoint, self._default_db)
        return client

    @staticmethod
    async def _dispose(client: aioredis.Redis) -> None:
        await client.aclose()
        await client.connection_pool.disconnect()

    async def _connect_once(self) -> aioredis.Redis:
        try:
            client = await self._open()
        except BaseException:
            self._connecting = None
            raise
        if self._closed:
            self._connecting = None
            await self._dispose(client)
            raise RuntimeError(f"{type(self).__name__} is closed")
        self._client = client
        self._connecting = None
        return client

    async def _connect(self) -> aioredis.Redis:
        client = self._client
        if client is not None:
            return client
        self._check_open()
        # No await between the check and the assignment: one attempt per event loop.
        attempt = self._connecting
        if attempt is None:
            attempt = asyncio.ensure_future(self._connect_once())
            attempt.add_done_callback(_consume_outcome)
            self._connecting = attempt
        # A cancelled caller stops waiting; the attempt keeps running for everyone else.
        return await asyncio.shield(attempt)

    def _extra_client(self, key: Hashable, db: int, **overrides: Any) -> aioredis.Redis:
        self._check_open()
        client = self._extra.get(key)
        if client is None:
            client = self._create_client(db, **overrides)
            self._extra[key] = client
        return client

    async def get_database(self, db: int = -1) -> aioredis.Redis:
        """Return the client for `db`, connecting on first use."""
        client = await self._connect()
        db = self._resolve_db(db)
        if db == self._default_db:
            return client
        return self._extra_client(("db", db), db)

    async def get_batch(self, db: int = -1) -> aioredis.client.Pipeline:
        """Commands queued on the returned pipeline are sent as one unit on `execute()`."""
        client = await self.get_database(db)
        return client.pipeline(transaction=False)

    async def get_subscriber(self) -> aioredis.client.PubSub:
        client = await self._connect()
        return client.pubsub()

    async def get_server(self, host: Optional[str] = None, port: Optional[int] = None) -> aioredis.Redis:
        client = await self._connect()
        if host is None:
            return client
        port = port or 6379
        key = self._server_key(client, host, port)
        if key is None:
            return client
        return self._extra_client(key, self._default_db, host=host, port=port)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        clients = [c for c in (self._client, *self._extra.values()) if c is not None]
        self._client = None
        self._extra.clear()
        for client in clients:
            await self._dispose(client)
        if clients:
            logger.info("Closed redis connection to %s", self._endpoint)

    async def __aenter__(self) -> "AsyncRedisConnection":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
