"""Event registry bridging emitted events to handlers and background executions."""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
import logging
import threading
from collections.abc import Awaitable
from collections.abc import Callable
from typing import Any, Union

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], Any]
ErrorCallback = Callable[[str, Any, BaseException], None]
PendingFuture = Union[asyncio.Future, concurrent.futures.Future]


class EventRegistry:
    """
    Registry of event handlers keyed by event name.

    Handlers are kept per event name as an ordered set: registering an equal handler twice is
    a no-op, and removal matches by equality (so a bound method such as `obj.handle` can be
    removed with a fresh `obj.handle`). Dispatching is fire-and-forget. Handlers are called
    synchronously, and any awaitable they return (including executions started by task
    triggers) is scheduled and tracked until it finishes, without the dispatcher waiting for
    it. Awaitables are scheduled on the running event loop, or on a background event loop
    thread owned by the registry when events are dispatched from synchronous code.
    """

    def __init__(self, on_error: ErrorCallback | None = None) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._pending: set[PendingFuture] = set()
        self._on_error = on_error
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None

    def on(self, event_name: str, handler: EventHandler) -> None:
        """
        Register `handler` for `event_name`.

        Args:
            event_name: Name of the event to handle.
            handler: Callable taking the event payload. May be sync or async.
        """
        if not callable(handler):
            raise TypeError(f"Event handler for '{event_name}' must be callable.")
        handlers = self._handlers.setdefault(event_name, [])
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event_name: str, handler: EventHandler) -> bool:
        """
        Remove `handler` from `event_name`.

        Returns:
            True if the handler was registered and has been removed.
        """
        handlers = self._handlers.get(event_name, [])
        if handler not in handlers:
            return False
        handlers.remove(handler)
        if not handlers:
            del self._handlers[event_name]
        return True

    def handlers(self, event_name: str) -> list[EventHandler]:
        """Return a copy of the handlers registered for `event_name`."""
        return list(self._handlers.get(event_name, []))

    def event_names(self) -> list[str]:
        return list(self._handlers)

    def dispatch(self, event_name: str, payload: Any = None) -> int:
        """
        Invoke every handler registered for `event_name` with `payload`.

        Errors are logged but don't prevent other handlers from running.

        Returns:
            Number of handlers invoked.
        """
        handlers = self.handlers(event_name)
        for handler in handlers:
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    self.spawn(event_name, payload, lambda result=result: result)
            except Exception as e:
                logger.exception(f"Error in event handler for '{event_name}': {e}")
                self._report(event_name, payload, e)
        return len(handlers)

    def spawn(
        self, event_name: str, payload: Any, factory: Callable[[], Awaitable[Any]]
    ) -> PendingFuture:
        """
        Schedule the awaitable produced by `factory` and track it until it finishes.

        Inside a running event loop the awaitable becomes a task of that loop. Otherwise it is
        submitted to the registry's background event loop, started on first use.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            future: PendingFuture = asyncio.run_coroutine_threadsafe(
                _as_coroutine(factory()), self._background_loop()
            )
        else:
            future = asyncio.ensure_future(factory(), loop=loop)

        with self._lock:
            self._pending.add(future)
        future.add_done_callback(lambda fut: self._finished(event_name, payload, fut))
        return future

    @property
    def pending(self) -> int:
        """Number of background executions that have not finished yet."""
        with self._lock:
            return len(self._pending)

    async def drain(self) -> None:
        """Wait until every background execution, including ones spawned meanwhile, is done."""
        loop = asyncio.get_running_loop()
        while True:
            with self._lock:
                pending = list(self._pending)
            waitables = [
                asyncio.wrap_future(future, loop=loop)
                if isinstance(future, concurrent.futures.Future)
                else future
                for future in pending
                if isinstance(future, concurrent.futures.Future) or future.get_loop() is loop
            ]
            if not waitables:
                return
            await asyncio.gather(*waitables, return_exceptions=True)

    def close(self) -> None:
        """Stop the background event loop thread, if one was started."""
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop = self._thread = None
        if loop is None or thread is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        thread.join()
        loop.close()

    def _background_loop(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None:
                self._loop = asyncio.new_event_loop()
                self._thread = threading.Thread(
                    target=self._loop.run_forever, name="flowlite-events", daemon=True
                )
                self._thread.start()
                logger.debug("Started background event loop for events emitted outside a loop")
            return self._loop

    def _finished(self, event_name: str, payload: Any, future: PendingFuture) -> None:
        with self._lock:
            self._pending.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(
                f"Background execution for event '{event_name}' failed: {error}",
                exc_info=error,
            )
            self._report(event_name, payload, error)

    def _report(self, event_name: str, payload: Any, error: BaseException) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(event_name, payload, error)
        except Exception:
            logger.exception(f"Error while reporting failure of event '{event_name}'")


async def _as_coroutine(awaitable: Awaitable[Any]) -> Any:
    return await awaitable
