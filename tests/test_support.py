from pagepilot.config import Settings
from pagepilot.credentials import API_KEY_NAME, DotenvCredentialStore, MemoryCredentialStore
from pagepilot.decision import DEFAULT_MODEL
from pagepilot.models import LogKind
from pagepilot.runlog import RunLog


def test_runlog_is_append_only_and_notifies():
    log = RunLog()
    seen = []
    unsubscribe = log.subscribe(seen.append)

    log.info("one")
    log.append(LogKind.ACTION, "two")
    unsubscribe()
    log.error("three")

    assert [e.message for e in log.entries] == ["one", "two", "three"]
    assert [e.message for e in seen] == ["one", "two"]
    assert len(log) == 3


def test_runlog_recent_context_format():
    log = RunLog()
    log.append(LogKind.MODEL, '{"done":true}')
    log.warning("careful")
    assert log.recent_context(6) == '[model] {"done":true}\n[warning] careful'
    assert log.recent_context(1) == "[warning] careful"


def test_dotenv_store_round_trip(tmp_path):
    path = tmp_path / "nested" / "credentials.env"
    store = DotenvCredentialStore(path)

    assert store.load(API_KEY_NAME) is None
    assert store.save(API_KEY_NAME, "AIza-secret 123") is True
    assert store.load(API_KEY_NAME) == "AIza-secret 123"

    assert store.save(API_KEY_NAME, "rotated") is True
    assert DotenvCredentialStore(path).load(API_KEY_NAME) == "rotated"
    assert path.stat().st_mode & 0o777 == 0o600


def test_memory_store_treats_empty_as_missing():
    store = MemoryCredentialStore({API_KEY_NAME: ""})
    assert store.load(API_KEY_NAME) is None


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "env-key")
    monkeypatch.setenv("PAGEPILOT_STEP_LIMIT", "0")
    monkeypatch.setenv("HEADLESS", "true")
    monkeypatch.setenv("PAGEPILOT_LOG_LEVEL", "debug")
    monkeypatch.delenv("PAGEPILOT_MODEL", raising=False)

    s = Settings.from_env(dotenv=False)

    assert s.api_key == "env-key"
    assert s.step_limit == 1
    assert s.headless is True
    assert s.log_level == "DEBUG"
    assert s.model == DEFAULT_MODEL
