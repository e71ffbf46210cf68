"""Load listing pages in a pooled browser with basic fingerprint hardening."""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Dict, Optional, Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .config import FetcherSettings
from .errors import NavigationError, NavigationTimeout
from .models import RenderedPage, utc_now
from .pool import BrowserSession

LOGGER = logging.getLogger(__name__)

USER_AGENTS: Sequence[str] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/116.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/116.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Edge/116.0.1938.69",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:109.0) Gecko/20100101 Firefox/117.0",
)

EXTRA_HEADERS: Dict[str, str] = {
    "Accept-Language": "pl-PL,pl;q=0.9,en-US;q=0.8,en;q=0.7",
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,"
        "image/apng,*/*;q=0.8"
    ),
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Upgrade-Insecure-Requests": "1",
}

VIEWPORT = {"width": 1920, "height": 1080}

STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'languages', { get: () => ['pl-PL', 'pl', 'en-US', 'en'] });
Object.defineProperty(window, 'chrome', { value: { runtime: {} }, writable: true });
"""

SCROLL_SCRIPT = """
([distance, interval]) => new Promise((resolve) => {
  let total = 0;
  const timer = setInterval(() => {
    const height = document.body ? document.body.scrollHeight : 0;
    window.scrollBy(0, distance);
    total += distance;
    if (total >= height) {
      clearInterval(timer);
      window.scrollTo(0, 0);
      resolve();
    }
  }, interval);
})
"""


class PageFetcher:
    """Navigate, scroll to trigger lazy content, then let the page settle."""

    def __init__(
        self,
        settings: Optional[FetcherSettings] = None,
        user_agents: Sequence[str] = USER_AGENTS,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings or FetcherSettings()
        self.user_agents = list(user_agents)
        self._rng = rng or random.Random()

    def pick_user_agent(self) -> str:
        return self._rng.choice(self.user_agents)

    async def _new_context(self, session: BrowserSession) -> Any:
        context = await session.browser.new_context(
            user_agent=self.pick_user_agent(),
            locale="pl-PL",
            viewport=VIEWPORT,
            extra_http_headers=EXTRA_HEADERS,
        )
        await context.add_init_script(STEALTH_SCRIPT)
        return context

    async def _load(self, context: Any, url: str) -> RenderedPage:
        settings = self.settings
        low, high = settings.warmup_delay
        if high > 0:
            await asyncio.sleep(self._rng.uniform(low, high))

        page = await context.new_page()
        await page.goto(
            url,
            wait_until="networkidle",
            timeout=settings.navigation_timeout * 1000,
        )
        await page.evaluate(
            SCROLL_SCRIPT, [settings.scroll_step, int(settings.scroll_interval * 1000)]
        )
        await asyncio.sleep(settings.settle_delay)
        html = await page.content()
        return RenderedPage(
            requested_url=url,
            url=page.url or url,
            html=html,
            fetched_at=utc_now(),
        )

    async def fetch(self, session: BrowserSession, url: str) -> RenderedPage:
        """Return the settled HTML of ``url`` loaded in ``session``.

        The warm-up, navigation, scroll and settle steps share one wall-clock
        budget of ``navigation_timeout`` plus the fixed delays.
        """

        settings = self.settings
        budget = settings.navigation_timeout + settings.settle_delay + max(settings.warmup_delay)
        try:
            context = await self._new_context(session)
        except PlaywrightError as exc:
            raise NavigationError(f"Could not open browser context for {url}: {exc}") from exc

        try:
            page = await asyncio.wait_for(self._load(context, url), timeout=budget)
        except (asyncio.TimeoutError, PlaywrightTimeoutError) as exc:
            raise NavigationTimeout(f"Page did not settle within {budget:.0f}s: {url}") from exc
        except PlaywrightError as exc:
            raise NavigationError(f"Navigation failed for {url}: {exc}") from exc
        finally:
            try:
                await context.close()
            except Exception as exc:  # pragma: no cover - browser may already be gone
                LOGGER.debug("Closing browser context failed: %s", exc)

        LOGGER.debug("Fetched %s (%d bytes)", page.url, len(page.html))
        return page
