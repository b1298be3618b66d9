# src/pagepilot/credentials.py
import logging
import os
from pathlib import Path
from typing import Dict, Optional, Protocol

from dotenv import dotenv_values, set_key

logger = logging.getLogger(__name__)

API_KEY_NAME = "GEMINI_API_KEY"


class CredentialStore(Protocol):
    def save(self, key: str, value: str) -> bool: ...

    def load(self, key: str) -> Optional[str]: ...


class DotenvCredentialStore:
    """Keeps secrets in a private .env style file (mode 0600)."""

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path).expanduser()

    def save(self, key: str, value: str) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.touch(mode=0o600, exist_ok=True)
            ok, _, _ = set_key(str(self.path), key, value, quote_mode="always")
            # set_key rewrites the file, keep it private
            os.chmod(self.path, 0o600)
            return bool(ok)
        except OSError as e:
            logger.warning("could not write credentials to %s: %s", self.path, e)
            return False

    def load(self, key: str) -> Optional[str]:
        if not self.path.is_file():
            return None
        return dotenv_values(self.path).get(key) or None


class MemoryCredentialStore:
    def __init__(self, values: Optional[Dict[str, str]] = None):
        self.values: Dict[str, str] = dict(values or {})

    def save(self, key: str, value: str) -> bool:
        self.values[key] = value
        return True

    def load(self, key: str) -> Optional[str]:
        return self.values.get(key) or None
