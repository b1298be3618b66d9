# src/pagepilot/surface.py
import logging
import os
import platform
from typing import Any, Dict, Optional, Protocol, Tuple, runtime_checkable

from playwright.async_api import async_playwright, BrowserContext, Page

from .models import Size

logger = logging.getLogger(__name__)


@runtime_checkable
class PageSurface(Protocol):
    """What the loop needs from a page. Playwright is one implementation; tests use fakes."""

    @property
    def url(self) -> Optional[str]: ...

    @property
    def is_loading(self) -> bool: ...

    @property
    def is_attached(self) -> bool: ...

    async def load(self, url: str) -> None: ...

    async def evaluate(self, script: str) -> Any: ...

    async def capture(self) -> bytes: ...

    async def layout_size(self) -> Size: ...

    async def ready_state(self) -> Optional[str]: ...


class SurfaceSlot:
    """
    Holds the page surface the agent currently drives.
    Built once by the caller and handed to perception, executor and controller.
    """
    def __init__(self, surface: Optional[PageSurface] = None):
        self._surface = surface

    def attach(self, surface: Optional[PageSurface]) -> None:
        self._surface = surface

    def detach(self) -> None:
        self._surface = None

    def current(self) -> Optional[PageSurface]:
        return self._surface

    @property
    def is_available(self) -> bool:
        return self._surface is not None and self._surface.is_attached


# ============================================================
# Playwright
# ============================================================

class PlaywrightSurface:
    """
    PageSurface over a single Playwright page. `page` is the explicit accessor for the raw handle.

    Cross-document loads are covered by document.readyState; the flag only
    spans our own goto() so same-document navigations never latch it.
    """

    def __init__(self, page: Page):
        self._page = page
        self._loading = False

    @property
    def page(self) -> Page:
        return self._page

    @property
    def url(self) -> Optional[str]:
        return self._page.url or None

    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def is_attached(self) -> bool:
        return not self._page.is_closed()

    async def load(self, url: str) -> None:
        self._loading = True
        try:
            await self._page.goto(url, wait_until="domcontentloaded")
        finally:
            self._loading = False

    async def evaluate(self, script: str) -> Any:
        return await self._page.evaluate(script)

    async def capture(self) -> bytes:
        return await self._page.screenshot(type="png", full_page=False)

    async def layout_size(self) -> Size:
        vp = self._page.viewport_size
        if vp:
            return Size(vp["width"], vp["height"])
        size = await self._page.evaluate("({width: window.innerWidth, height: window.innerHeight})")
        return Size(float(size.get("width") or 0), float(size.get("height") or 0))

    async def ready_state(self) -> Optional[str]:
        try:
            state = await self._page.evaluate("document.readyState")
        except Exception as e:
            logger.debug("readyState unavailable: %s", e)
            return None
        return state if isinstance(state, str) else None


CHROME_LOCATIONS: Dict[str, Tuple[str, ...]] = {
    "Darwin": (
        "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
        "~/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    ),
    "Linux": ("/usr/bin/google-chrome", "/usr/bin/google-chrome-stable", "/usr/bin/chromium"),
    "Windows": (
        r"C:\Program Files\Google\Chrome\Application\chrome.exe",
        r"C:\Program Files (x86)\Google\Chrome\Application\chrome.exe",
    ),
}


class BrowserSession:
    """Owns the Playwright process and persistent context; exposes the page as a PlaywrightSurface."""

    def __init__(
        self,
        user_data_dir: str,
        slow_mo_ms: int = 0,
        headless: bool = False,
        viewport: Optional[Dict[str, int]] = None,
        chrome_path: Optional[str] = None,
    ):
        self.user_data_dir = user_data_dir
        self.slow_mo_ms = slow_mo_ms
        self.headless = headless
        self.viewport = viewport or {"width": 1280, "height": 800}
        self.chrome_path = chrome_path
        self._pw = None
        self.ctx: Optional[BrowserContext] = None
        self.surface: Optional[PlaywrightSurface] = None

    def _chrome_executable(self) -> Optional[str]:
        """Configured path if it exists, else the first installed system Chrome."""
        if self.chrome_path:
            configured = os.path.expanduser(self.chrome_path)
            return configured if os.path.exists(configured) else None
        known = CHROME_LOCATIONS.get(platform.system(), ())
        return next((p for p in map(os.path.expanduser, known) if os.path.exists(p)), None)

    async def start(self) -> PlaywrightSurface:
        os.makedirs(self.user_data_dir, exist_ok=True)
        self._pw = await async_playwright().start()

        launch_kwargs: Dict[str, Any] = dict(
            user_data_dir=self.user_data_dir,
            headless=self.headless,
            slow_mo=self.slow_mo_ms,
            viewport=self.viewport,
            timeout=60_000,
            # screenshot pixels == CSS pixels, so normalized clicks map 1:1
            device_scale_factor=1,
            args=[
                "--disable-blink-features=AutomationControlled",
                "--no-first-run",
                "--no-default-browser-check",
                "--disable-infobars",
            ],
            ignore_default_args=[
                "--enable-automation",
            ],
        )

        chrome_path = self._chrome_executable()
        if chrome_path:
            logger.info("Using Chrome executable: %s", chrome_path)
            launch_kwargs["executable_path"] = chrome_path
        else:
            logger.info("Using bundled Playwright chromium")

        self.ctx = await self._pw.chromium.launch_persistent_context(**launch_kwargs)
        page = self.ctx.pages[0] if self.ctx.pages else await self.ctx.new_page()
        self.surface = PlaywrightSurface(page)
        return self.surface

    async def stop(self):
        if self.ctx:
            await self.ctx.close()
        if self._pw:
            await self._pw.stop()
        self.ctx = None
        self._pw = None
        self.surface = None
