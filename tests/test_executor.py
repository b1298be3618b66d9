import json

import pytest

from fakes import FakeSurface, SleepRecorder, messages

from pagepilot.executor import ActionExecutor, normalized_point
from pagepilot.models import ClickAt, Complete, LogKind, Navigate, Scroll, Size, Type, Wait
from pagepilot.runlog import RunLog
from pagepilot.surface import SurfaceSlot

VIEWPORT = Size(1000, 800)


@pytest.mark.parametrize("width, height", [(1000, 800), (390, 844), (1, 1), (0, 0)])
@pytest.mark.parametrize("nx", [-500, -0.1, 0, 1, 333.3, 999.9, 1000, 1000.1, 1e9])
@pytest.mark.parametrize("ny", [-1, 0, 500, 1000, 4242])
def test_mapped_point_stays_inside_viewport(width, height, nx, ny):
    px, py = normalized_point(nx, ny, Size(width, height))
    assert 0 <= px <= width
    assert 0 <= py <= height


def test_mapping_scales_linearly():
    assert normalized_point(500, 500, Size(1000, 800)) == (500.0, 400.0)
    assert normalized_point(250, 1000, Size(1280, 720)) == (320.0, 720.0)


@pytest.mark.asyncio
async def test_click_runs_element_from_point_at_pixel(executor, surface, log):
    outcome = await executor.execute([ClickAt(500, 500)], VIEWPORT)
    assert not outcome.completed and not outcome.paused
    (script,) = surface.scripts_with("elementFromPoint")
    assert "elementFromPoint(500.0, 400.0)" in script
    assert "Clicked BUTTON" in messages(log, LogKind.RESULT)
    assert "Executing: click_at(500,500)" in messages(log, LogKind.ACTION)


@pytest.mark.asyncio
async def test_each_action_type(executor, surface, sleeps):
    actions = [Navigate("https://example.org/a"), Scroll(-250), Type('say "hi"\n</script>'), Wait(250)]
    outcome = await executor.execute(actions, VIEWPORT)
    assert outcome.completed is False
    assert surface.loaded == ["https://example.org/a"]
    assert surface.scripts_with("window.scrollBy(0, -250")
    (typed,) = surface.scripts_with("activeElement")
    assert json.dumps('say "hi"\n</script>') in typed
    assert "dispatchEvent(new Event('input'" in typed
    assert sleeps.delays == [0.25]


@pytest.mark.asyncio
async def test_complete_stops_the_batch(executor, surface):
    outcome = await executor.execute([Complete(), Scroll(100)], VIEWPORT)
    assert outcome.completed is True
    assert surface.scripts_with("scrollBy") == []


@pytest.mark.asyncio
async def test_script_failure_is_logged_and_batch_continues(log, sleeps):
    surface = FakeSurface(fail_scripts=["scrollBy"])
    ex = ActionExecutor(SurfaceSlot(surface), log, sleep=sleeps)
    outcome = await ex.execute([Scroll(100), ClickAt(10, 10)], VIEWPORT)
    assert outcome.completed is False
    assert surface.scripts_with("elementFromPoint")
    warnings = messages(log, LogKind.WARNING)
    assert len(warnings) == 1 and "scroll(100) failed" in warnings[0]


@pytest.mark.asyncio
async def test_safety_match_preserves_exact_suffix(log, sleeps):
    # scans before scroll and click are clean, the one before type sees the order page
    surface = FakeSurface(page_texts=["Shop", "Cart", "Please confirm order"])
    ex = ActionExecutor(SurfaceSlot(surface), log, sleep=sleeps)
    actions = [Scroll(200), ClickAt(100, 900), Type("4111"), Wait(1000)]

    outcome = await ex.execute(actions, VIEWPORT)

    assert outcome.paused is True
    assert outcome.completed is False
    assert outcome.pending == (Type("4111"), Wait(1000))
    assert outcome.matched == ("confirm",)
    assert surface.scripts_with("activeElement") == []
    assert sleeps.delays == []
    assert any("confirm" in w for w in messages(log, LogKind.WARNING))


@pytest.mark.asyncio
async def test_confirmed_batch_lets_first_action_through_only(log, sleeps):
    surface = FakeSurface(page_texts=["Buy now"])
    ex = ActionExecutor(SurfaceSlot(surface), log, sleep=sleeps)
    outcome = await ex.execute([ClickAt(1, 1), Scroll(10)], VIEWPORT, confirmed=True)
    assert surface.scripts_with("elementFromPoint")
    assert outcome.paused is True
    assert outcome.pending == (Scroll(10),)


@pytest.mark.asyncio
async def test_missing_surface_aborts(sleeps):
    log = RunLog()
    outcome = await ActionExecutor(SurfaceSlot(), log, sleep=sleeps).execute([Scroll(1)], VIEWPORT)
    assert outcome.aborted is True
    assert messages(log, LogKind.ERROR)
