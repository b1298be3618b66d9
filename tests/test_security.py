import pytest

from fakes import FakeSurface

from pagepilot.security import MAX_SCAN_CHARS, SafetyGate, find_risk_keywords, warning_for


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Review and CONFIRM ORDER", ["confirm"]),
        ("Submit order now", ["submit order"]),
        ("Proceed to payment", ["pay"]),
        ("Buy now or Delete cart", ["buy", "delete"]),
        ("Send message", ["send"]),
        ("Make a purchase", ["purchase"]),
        ("Resend verification code", ["send"]),
        ("Prepay your order", ["pay"]),
        ("Undelete", ["delete"]),
        ("display settings", []),
        ("Read the docs", []),
    ],
)
def test_find_risk_keywords(text, expected):
    assert find_risk_keywords(text) == expected


def test_scan_is_capped():
    text = "x" * MAX_SCAN_CHARS + " buy"
    assert find_risk_keywords(text) == []


def test_warning_names_keywords():
    msg = warning_for(["buy", "pay"])
    assert "buy" in msg and "pay" in msg


@pytest.mark.asyncio
async def test_gate_reads_visible_text():
    surface = FakeSurface(page_texts=["Checkout - please confirm order"])
    assert await SafetyGate().scan(surface) == ["confirm"]


@pytest.mark.asyncio
async def test_gate_treats_unreadable_page_as_safe():
    class Broken(FakeSurface):
        async def evaluate(self, script):
            raise RuntimeError("context destroyed")

    assert await SafetyGate().scan(Broken()) == []
