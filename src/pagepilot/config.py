# src/pagepilot/config.py
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .decision import DEFAULT_MODEL, GEMINI_OPENAI_BASE_URL


def _env_bool(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    base_url: str = GEMINI_OPENAI_BASE_URL
    step_limit: int = 10
    start_url: str = "about:blank"
    user_data_dir: str = ".user_data"
    slow_mo_ms: int = 0
    headless: bool = False
    viewport_width: int = 1280
    viewport_height: int = 800
    chrome_path: Optional[str] = None
    credentials_file: str = "~/.pagepilot/credentials.env"
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()
        return cls(
            api_key=os.getenv("GEMINI_API_KEY") or None,
            model=os.getenv("PAGEPILOT_MODEL", DEFAULT_MODEL),
            base_url=os.getenv("PAGEPILOT_BASE_URL", GEMINI_OPENAI_BASE_URL),
            step_limit=max(1, int(os.getenv("PAGEPILOT_STEP_LIMIT", "10"))),
            start_url=os.getenv("PAGEPILOT_START_URL", "about:blank"),
            user_data_dir=os.getenv("USER_DATA_DIR", ".user_data"),
            slow_mo_ms=int(os.getenv("SLOW_MO_MS", "0")),
            headless=_env_bool("HEADLESS"),
            viewport_width=int(os.getenv("BROWSER_VIEWPORT_WIDTH", "1280")),
            viewport_height=int(os.getenv("BROWSER_VIEWPORT_HEIGHT", "800")),
            chrome_path=os.getenv("CHROME_EXECUTABLE_PATH") or None,
            credentials_file=os.getenv("PAGEPILOT_CREDENTIALS_FILE", "~/.pagepilot/credentials.env"),
            log_level=os.getenv("PAGEPILOT_LOG_LEVEL", "WARNING").upper(),
        )
