"""Run callables against the shared database, singly or as one batch."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, List, Optional, TypeVar

import redis
import redis.asyncio as aioredis

from redisdist.core.connection import AsyncRedisConnection, RedisConnection


T = TypeVar("T")


def execute(connection: RedisConnection, func: Optional[Callable[[redis.Redis], T]]) -> Optional[T]:
    if func is None:
        return None
    return func(connection.get_database())


async def execute_async(
    connection: AsyncRedisConnection, func: Optional[Callable[[aioredis.Redis], Awaitable[T]]]
) -> Optional[T]:
    if func is None:
        return None
    database = await connection.get_database()
    return await func(database)


def batch_execute(connection: RedisConnection, *funcs: Callable[[redis.client.Pipeline], Any]) -> List[Any]:
    """Queue every func on one pipeline and send it in a single round trip.

    The server may interleave other clients' commands between the batched
    ones; use a script when contiguity matters.
    """
    if not funcs:
        return []
    with connection.get_batch() as pipe:
        for func in funcs:
            func(pipe)
        return pipe.execute()


async def batch_execute_async(
    connection: AsyncRedisConnection, *funcs: Callable[[aioredis.client.Pipeline], Any]
) -> List[Any]:
    if not funcs:
        return []
    async with await connection.get_batch() as pipe:
        for func in funcs:
            func(pipe)
        return await pipe.execute()
