"""Per-key in-flight request coalescing.

KeyedCoalescer prevents duplicate concurrent computations for the same
key. If computation A is running for key "k" and call B arrives for the
same key, B awaits A's future instead of starting a second computation.

The only shared structure is a dict of futures, mutated without any
``await`` between lookup and insert, so the event loop's cooperative
scheduling makes check-and-register atomic. Unrelated keys never wait
on each other.

Single-process only. Cross-process runs rely on the file cache.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable


class KeyedCoalescer[T]:
    """Deduplicates in-flight async computations by key.

    Usage::

        coalescer = KeyedCoalescer[AgentResult]()
        result = await coalescer.run(cache_key, compute)
    """

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Future[T]] = {}

    async def run(
        self,
        key: str,
        compute: Callable[[], Awaitable[T]],
    ) -> T:
        """Run ``compute`` once per concurrent key; share its outcome."""
        existing = self._in_flight.get(key)
        if existing is not None:
            # shield: a cancelled waiter must not cancel the owner's future
            return await asyncio.shield(existing)

        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            result = await compute()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except BaseException as exc:
            if not future.done():
                future.set_exception(exc)
                # Mark retrieved so an unobserved failure doesn't log noise.
                future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            self._in_flight.pop(key, None)

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    @property
    def active_keys(self) -> list[str]:
        """Return currently in-flight keys."""
        return list(self._in_flight.keys())
