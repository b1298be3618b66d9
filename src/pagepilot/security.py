# src/pagepilot/security.py
import logging
from typing import List, Optional, Sequence

from .surface import PageSurface

logger = logging.getLogger(__name__)

RISK_KEYWORDS = ("purchase", "buy", "pay", "send", "delete", "confirm", "submit order")

MAX_SCAN_CHARS = 8000

VISIBLE_TEXT_SCRIPT = f"""
(() => {{
  const text = (document.title || '') + ' ' + ((document.body && document.body.innerText) || '');
  return text.slice(0, {MAX_SCAN_CHARS});
}})();
"""


def find_risk_keywords(text: str) -> List[str]:
    text = (text or "")[:MAX_SCAN_CHARS].lower()
    return [kw for kw in RISK_KEYWORDS if kw in text]


def warning_for(matched: Sequence[str]) -> str:
    return f"Sensitive keyword detected ({', '.join(matched)}). Confirm to continue."


class SafetyGate:
    async def scan(self, surface: PageSurface) -> List[str]:
        """Matched keywords on the visible page, empty when safe or when the page can't be read."""
        try:
            text: Optional[str] = await surface.evaluate(VISIBLE_TEXT_SCRIPT)
        except Exception as e:
            logger.debug("safety scan: page text unavailable: %s", e)
            return []
        if not isinstance(text, str):
            return []
        return find_risk_keywords(text)
