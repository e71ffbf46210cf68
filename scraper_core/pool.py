"""Bounded pool of Playwright browser sessions shared by all scrape jobs."""
from __future__ import annotations

import asyncio
from collections import deque
import itertools
import logging
from typing import Any, Deque, Dict, List, Optional, Sequence, Set

from playwright.async_api import Browser, Playwright, async_playwright

from .errors import PoolClosedError, PoolExhausted

LOGGER = logging.getLogger(__name__)

CHROMIUM_ARGS: Sequence[str] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-gpu",
    "--disable-web-security",
    "--disable-features=VizDisplayCompositor",
    "--window-size=1920,1080",
    "--disable-blink-features=AutomationControlled",
    "--no-first-run",
    "--disable-background-networking",
    "--disable-component-extensions-with-background-pages",
    "--disable-default-apps",
    "--disable-extensions",
    "--disable-ipc-flooding-protection",
)

_SESSION_IDS = itertools.count(1)


class BrowserSession:
    """Opaque handle to one live browser instance."""

    def __init__(self, browser: Any) -> None:
        self.id = next(_SESSION_IDS)
        self.browser = browser
        self.closed = False

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self.browser.close()
        except Exception as exc:  # pragma: no cover - process may already be gone
            LOGGER.debug("Closing browser session %s failed: %s", self.id, exc)

    def __repr__(self) -> str:
        return f"BrowserSession(id={self.id}, closed={self.closed})"


class SessionFactory:
    """Launch headless Chromium sessions through a shared Playwright driver."""

    def __init__(
        self,
        headless: bool = True,
        executable_path: Optional[str] = None,
        args: Sequence[str] = CHROMIUM_ARGS,
    ) -> None:
        self.headless = headless
        self.executable_path = executable_path
        self.args = list(args)
        self._playwright: Optional[Playwright] = None
        self._start_lock = asyncio.Lock()

    async def _driver(self) -> Playwright:
        async with self._start_lock:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
        return self._playwright

    async def create(self) -> BrowserSession:
        driver = await self._driver()
        browser: Browser = await driver.chromium.launch(
            headless=self.headless,
            executable_path=self.executable_path,
            args=self.args,
        )
        return BrowserSession(browser)

    async def shutdown(self) -> None:
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


class BrowserPool:
    """Hand out at most ``capacity`` sessions, queueing excess demand FIFO.

    A slot is counted as in use from the moment it is granted until the
    session is released or discarded. Freed slots go straight to the
    longest waiter, so newcomers cannot overtake queued callers.
    """

    def __init__(self, capacity: int, factory: Any = None) -> None:
        if capacity < 1:
            raise ValueError("Pool capacity must be at least 1")
        self.capacity = capacity
        self._factory = factory or SessionFactory()
        self._lock = asyncio.Lock()
        self._idle: Deque[BrowserSession] = deque()
        self._waiters: Deque[asyncio.Future] = deque()
        self._live: Set[BrowserSession] = set()
        self._leased: Set[BrowserSession] = set()
        self._in_use = 0
        self._closed = False

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def waiting(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    @property
    def closed(self) -> bool:
        return self._closed

    async def acquire(self, timeout: Optional[float] = None) -> BrowserSession:
        """Return a session, suspending while the pool is at capacity.

        With ``timeout`` set, raises :class:`PoolExhausted` when no slot frees
        up in time.
        """

        waiter: Optional[asyncio.Future] = None
        session: Optional[BrowserSession] = None
        async with self._lock:
            if self._closed:
                raise PoolClosedError("Browser pool is shut down")
            if self._in_use < self.capacity and not self._waiters:
                self._in_use += 1
                session = self._idle.popleft() if self._idle else None
            else:
                waiter = asyncio.get_running_loop().create_future()
                self._waiters.append(waiter)

        if waiter is not None:
            try:
                if timeout is None:
                    session = await waiter
                else:
                    session = await asyncio.wait_for(asyncio.shield(waiter), timeout)
            except asyncio.TimeoutError:
                await self._abandon_wait(waiter)
                raise PoolExhausted(
                    f"No browser session became available within {timeout:.1f}s"
                ) from None
            except asyncio.CancelledError:
                await self._abandon_wait(waiter)
                raise

        if session is None:
            try:
                session = await self._factory.create()
            except BaseException:
                async with self._lock:
                    self._free_slot_locked()
                raise
            async with self._lock:
                if self._closed:
                    self._free_slot_locked()
                    closing = True
                else:
                    self._live.add(session)
                    closing = False
            if closing:
                await session.close()
                raise PoolClosedError("Browser pool is shut down")
            LOGGER.debug("Launched browser session %s", session.id)

        self._leased.add(session)
        return session

    async def _abandon_wait(self, waiter: asyncio.Future) -> None:
        async with self._lock:
            if waiter in self._waiters:
                self._waiters.remove(waiter)
            if not waiter.done():
                waiter.cancel()
                return
            if waiter.cancelled() or waiter.exception() is not None:
                return
            handed = waiter.result()
        # A slot was handed to us just before we gave up; pass it on.
        if handed is None:
            async with self._lock:
                self._free_slot_locked()
        else:
            self._leased.add(handed)
            await self.release(handed)

    def _next_waiter_locked(self) -> Optional[asyncio.Future]:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                return waiter
        return None

    def _free_slot_locked(self) -> None:
        waiter = self._next_waiter_locked()
        if waiter is not None:
            waiter.set_result(None)
        else:
            self._in_use -= 1

    async def release(self, session: BrowserSession) -> None:
        """Return a healthy session to the pool."""

        if session not in self._leased:
            raise ValueError(f"{session!r} is not leased from this pool")
        self._leased.discard(session)
        close_it = False
        async with self._lock:
            if self._closed or session.closed:
                self._live.discard(session)
                close_it = True
                self._free_slot_locked()
            else:
                waiter = self._next_waiter_locked()
                if waiter is not None:
                    waiter.set_result(session)
                else:
                    self._in_use -= 1
                    self._idle.append(session)
        if close_it:
            await session.close()

    async def discard(self, session: BrowserSession) -> None:
        """Close an unhealthy session and free its slot for a fresh one."""

        if session not in self._leased:
            raise ValueError(f"{session!r} is not leased from this pool")
        self._leased.discard(session)
        async with self._lock:
            self._live.discard(session)
            self._free_slot_locked()
        LOGGER.info("Discarded browser session %s", session.id)
        await session.close()

    async def close(self) -> None:
        """Reject waiters and force-close every live session."""

        async with self._lock:
            if self._closed:
                return
            self._closed = True
            waiters = list(self._waiters)
            self._waiters.clear()
            sessions: List[BrowserSession] = list(self._live)
            self._live.clear()
            self._idle.clear()
        for waiter in waiters:
            if not waiter.done():
                waiter.set_exception(PoolClosedError("Browser pool is shut down"))
        LOGGER.info(
            "Closing browser pool: %d live sessions, %d waiters rejected", len(sessions), len(waiters)
        )
        await asyncio.gather(*(session.close() for session in sessions), return_exceptions=True)
        shutdown = getattr(self._factory, "shutdown", None)
        if shutdown is not None:
            await shutdown()

    def stats(self) -> Dict[str, int]:
        return {
            "capacity": self.capacity,
            "in_use": self._in_use,
            "idle": len(self._idle),
            "waiting": self.waiting,
            "live": len(self._live),
        }
