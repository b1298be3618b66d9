# src/pagepilot/perception.py
from __future__ import annotations

import asyncio
import base64
import logging
from typing import Awaitable, Callable, Optional

from .errors import (
    CaptureFailedError,
    ImageEncodeError,
    NotLaidOutError,
    PageNotReadyError,
    StillLoadingError,
    SurfaceDetachedError,
    SurfaceUnavailableError,
)
from .models import Size, Snapshot
from .surface import PageSurface, SurfaceSlot

logger = logging.getLogger(__name__)

READY_STATES = ("interactive", "complete")

_FNV64_OFFSET = 0xCBF29CE484222325
_FNV64_PRIME = 0x100000001B3
_MASK64 = 0xFFFFFFFFFFFFFFFF


def fnv1a_64(data: bytes) -> int:
    """Cheap fingerprint to detect 'same screenshot' between steps. Not for anything security related."""
    h = _FNV64_OFFSET
    for b in data:
        h ^= b
        h = (h * _FNV64_PRIME) & _MASK64
    return h


async def describe_surface(surface: Optional[PageSurface]) -> str:
    if surface is None:
        return "surface=None"
    try:
        size = await surface.layout_size()
    except Exception as e:
        size = f"<{type(e).__name__}>"
    return f"url={surface.url} loading={surface.is_loading} attached={surface.is_attached} size={size}"


class PerceptionSource:
    """
    Captures the active surface once it is ready to be looked at.

    Readiness: non-zero layout, not mid-navigation, document.readyState
    interactive/complete (or unknown). Polled every `interval` seconds up to `timeout`.
    """

    def __init__(
        self,
        slot: SurfaceSlot,
        *,
        interval: float = 0.15,
        timeout: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.slot = slot
        self.interval = interval
        self.timeout = timeout
        self._sleep = sleep

    def _resolve(self) -> PageSurface:
        surface = self.slot.current()
        if surface is None:
            logger.debug("capture: missing surface")
            raise SurfaceUnavailableError()
        if not surface.is_attached:
            logger.debug("capture: surface detached url=%s", surface.url)
            raise SurfaceDetachedError()
        return surface

    async def wait_until_ready(self, surface: PageSurface) -> Size:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        while True:
            size = await surface.layout_size()
            loading = surface.is_loading
            state = await surface.ready_state()

            if not size.is_empty and not loading and (state is None or state in READY_STATES):
                return size

            if loop.time() >= deadline:
                logger.debug("capture: readiness timeout %s state=%s", await describe_surface(surface), state)
                if size.is_empty:
                    raise NotLaidOutError(size)
                if loading:
                    raise StillLoadingError(surface.url)
                raise PageNotReadyError(surface.url)

            await self._sleep(self.interval)

    async def capture(self) -> Snapshot:
        surface = self._resolve()
        viewport = await self.wait_until_ready(surface)

        try:
            png = await surface.capture()
        except Exception as e:
            logger.debug("capture: snapshot error %s", await describe_surface(surface))
            raise CaptureFailedError(e) from e
        if not png:
            raise ImageEncodeError()

        encoded = base64.b64encode(png).decode("ascii")
        return Snapshot(encoded_image=encoded, viewport=viewport, content_hash=fnv1a_64(png))
