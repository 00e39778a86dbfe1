from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_message, render_outbox


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Play the device and phone against a running Sunwatch companion.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


def _report(state: CLIState, message_id: Optional[str], wait: bool) -> None:
    if message_id is None:
        typer.secho("Companion ignored the message.", fg=typer.colors.YELLOW)
        return
    typer.secho(f"Trigger accepted. message_id={message_id}", fg=typer.colors.GREEN)
    if not wait:
        return
    entry = state.client.wait_for_message(
        message_id,
        interval=state.config.poll_interval,
        timeout=state.config.poll_timeout,
    )
    typer.echo()
    render_message(entry)


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Companion API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    session: Optional[str] = typer.Option(
        None,
        "--session",
        "-s",
        help="Device session id (defaults to CLI_SESSION_ID env or 'sunwatch').",
    ),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Seconds between outbox checks when waiting for a message.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Maximum seconds to wait for a message.",
    ),
) -> None:
    """Entry point for the CLI."""
    try:
        config = load_config(
            base_url=base_url,
            session_id=session,
            poll_interval=poll_interval,
            poll_timeout=timeout,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--session") from exc
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("ready")
def ready_command(
    ctx: typer.Context,
    wait: bool = typer.Option(False, "--wait/--no-wait", help="Show the queued message."),
) -> None:
    """Send the application-ready trigger."""
    state = _get_state(ctx)
    _report(state, state.client.send_ready(), wait)


@app.command("request")
def request_command(
    ctx: typer.Context,
    timezone: bool = typer.Option(False, "--timezone", help="Request the timezone offset."),
    weather: bool = typer.Option(False, "--weather", help="Request sunrise, sunset and temperature."),
    location: bool = typer.Option(False, "--location", help="Request the phone's coordinates."),
    all_: bool = typer.Option(False, "--all", help="Request everything."),
    wait: bool = typer.Option(False, "--wait/--no-wait", help="Show the queued message."),
) -> None:
    """Send an inbound AppMessage carrying request flags."""
    state = _get_state(ctx)
    flags = {
        name: 1
        for name, wanted in (
            ("req_timezone", timezone),
            ("req_weather", weather),
            ("req_location", location),
            ("req_all", all_),
        )
        if wanted
    }
    if not flags:
        flags = {"req_all": 1}
    typer.echo(f"Sending {', '.join(sorted(flags))} to {state.config.base_url} ...")
    _report(state, state.client.send_request(flags), wait)


@app.command("position")
def position_command(
    ctx: typer.Context,
    lat: Optional[float] = typer.Option(None, "--lat", help="Latitude in decimal degrees."),
    lon: Optional[float] = typer.Option(None, "--lon", help="Longitude in decimal degrees."),
    error_code: Optional[int] = typer.Option(
        None,
        "--error-code",
        min=1,
        max=3,
        help="Report a position error instead (1 denied, 2 unavailable, 3 timeout).",
    ),
    message: Optional[str] = typer.Option(None, "--message", help="Position error message."),
) -> None:
    """Report the phone's position, or a position error."""
    state = _get_state(ctx)
    if error_code is None and (lat is None or lon is None):
        raise typer.BadParameter("Provide --lat and --lon, or --error-code.")
    waiting = state.client.report_position(
        latitude=lat, longitude=lon, error_code=error_code, message=message
    )
    typer.echo(f"Position report answered {waiting} pending request(s).")


@app.command("outbox")
def outbox_command(
    ctx: typer.Context,
    ack: bool = typer.Option(False, "--ack", help="Acknowledge every listed message."),
) -> None:
    """Show messages waiting for the device."""
    state = _get_state(ctx)
    entries = state.client.get_outbox()
    render_outbox(entries)
    if not ack:
        return
    for entry in entries:
        state.client.acknowledge(entry["message_id"])
    typer.secho(f"Acknowledged {len(entries)} message(s).", fg=typer.colors.GREEN)
