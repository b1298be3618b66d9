# src/pagepilot/main.py
import asyncio
import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from .config import Settings
from .controller import RunController
from .credentials import DotenvCredentialStore
from .decision import DecisionEngine
from .models import LogEntry, LogKind, RunState
from .surface import BrowserSession, SurfaceSlot

console = Console()

KIND_STYLE = {
    LogKind.INFO: "dim",
    LogKind.MODEL: "cyan",
    LogKind.ACTION: "bold",
    LogKind.RESULT: "green",
    LogKind.ERROR: "bold red",
    LogKind.WARNING: "yellow",
}

HELP = """\
[bold]Commands[/bold]
  <text>        set the goal
  step          run one step
  run           run up to the step limit
  stop          cancel the current run
  resume        continue after a safety pause
  status        show run state
  models        list models and pick a default
  model NAME    use a specific model
  key VALUE     store the API key
  limit N       set the automatic step limit
  on / off      enable / disable Agent Mode
  snap          test a snapshot capture
  quit          exit
"""


def render_entry(entry: LogEntry) -> None:
    style = KIND_STYLE.get(entry.kind, "")
    ts = entry.timestamp.astimezone().strftime("%H:%M:%S")
    console.print(f"[dim]{ts}[/dim] [{style}]{entry.kind.value:<7}[/{style}] {escape(entry.message)}")


def print_status(ctl: RunController) -> None:
    console.print(
        f"status=[bold]{ctl.state.value}[/bold] step={ctl.current_step} limit={ctl.step_limit} "
        f"agent_mode={'on' if ctl.automation_enabled else 'off'} model={ctl.selected_model}"
    )
    console.print(f"goal: {escape(ctl.goal) or '[dim](none)[/dim]'}")
    if ctl.awaiting_safety_confirmation:
        pending = ", ".join(a.describe() for a in ctl.pending_actions or ())
        console.print(f"[yellow]awaiting confirmation, pending: {escape(pending)}[/yellow]")


async def handle_command(ctl: RunController, line: str) -> bool:
    """Returns False when the user wants out."""
    cmd, _, arg = line.partition(" ")
    cmd = cmd.lower()
    arg = arg.strip()

    if cmd in ("quit", "exit"):
        return False
    if cmd in ("help", "?"):
        console.print(HELP)
    elif cmd == "step":
        ctl.step()
    elif cmd == "run":
        ctl.run_automatically()
    elif cmd == "stop":
        ctl.stop()
    elif cmd == "resume":
        if ctl.resume_after_safety_check() is None:
            console.print("[dim]Nothing is waiting for confirmation.[/dim]")
    elif cmd == "status":
        print_status(ctl)
    elif cmd == "models":
        models = await ctl.refresh_models()
        if models:
            console.print("Available: " + ", ".join(models))
    elif cmd == "model" and arg:
        ctl.apply_model_override(arg)
    elif cmd == "key" and arg:
        ctl.api_key = arg
        console.print("[green]API key stored.[/green]")
    elif cmd == "limit" and arg.isdigit():
        ctl.step_limit = int(arg)
    elif cmd == "on":
        ctl.toggle_automation(True)
    elif cmd == "off":
        ctl.toggle_automation(False)
    elif cmd == "snap":
        await ctl.probe_snapshot()
    else:
        ctl.set_goal(line)
        console.print(f"[bold cyan]Goal set:[/bold cyan] {escape(ctl.goal)}")
    return True


async def amain():
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )

    session = BrowserSession(
        user_data_dir=settings.user_data_dir,
        slow_mo_ms=settings.slow_mo_ms,
        headless=settings.headless,
        viewport={"width": settings.viewport_width, "height": settings.viewport_height},
        chrome_path=settings.chrome_path,
    )
    surface = await session.start()
    if settings.start_url and settings.start_url != "about:blank":
        await surface.load(settings.start_url)

    slot = SurfaceSlot(surface)
    engine = DecisionEngine(api_key=settings.api_key, model=settings.model, base_url=settings.base_url)
    ctl = RunController(
        slot,
        engine,
        credentials=DotenvCredentialStore(settings.credentials_file),
        step_limit=settings.step_limit,
        automation_enabled=True,
    )
    ctl.log.subscribe(render_entry)

    console.print("[bold green]Browser agent started.[/bold green]")
    console.print("Type a goal, then [bold]run[/bold] or [bold]step[/bold]. [dim]help[/dim] lists commands.\n")
    if not ctl.api_key:
        console.print("[yellow]No API key yet: use 'key <value>' or set GEMINI_API_KEY.[/yellow]")

    try:
        while True:
            line = (await asyncio.to_thread(input, "> ")).strip()
            if not line:
                continue
            if not await handle_command(ctl, line):
                break
    except (EOFError, KeyboardInterrupt):
        pass
    finally:
        if ctl.state is not RunState.IDLE:
            ctl.stop()
        await ctl.join()
        await session.stop()


def main():
    asyncio.run(amain())


if __name__ == "__main__":
    main()
