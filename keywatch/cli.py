"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from pathlib import Path

import typer

from keywatch.api import build_manager
from keywatch.core.config import WatchConfig, load_config
from keywatch.core.device import Device
from keywatch.core.errors import KeywatchError
from keywatch.core.service import DeviceManager

app = typer.Typer(help="Watch hardware security devices as they are plugged in and out")


class EchoNotifier:
    def error(self, message: str) -> None:
        typer.echo(f"Error: {message}", err=True)


def _load(config_path: Path | None, transport: str | None, period: float | None) -> WatchConfig:
    config = load_config(config_path)
    if transport is not None:
        config = replace(config, transport=transport)
    if period is not None:
        config = replace(config, polling_period_s=period)
    return config


def _echo_hooks(manager: DeviceManager) -> None:
    def on_connected(device: Device) -> None:
        mode = " (bootloader)" if device.in_bootloader else ""
        typer.echo(f"Connected {device.id}{mode}")

    def on_disconnected(device: Device) -> None:
        typer.echo(f"Disconnected {device.id}")

    manager.register_after_init_hook(on_connected, name="cli-echo")
    manager.register_disconnect_hook(on_disconnected, name="cli-echo")


@app.command("config")
def show_config(
    config_path: Path | None = typer.Option(None, "--config", help="Path to config.yaml"),
) -> None:
    """Print the resolved configuration."""
    try:
        config = load_config(config_path)
    except KeywatchError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    typer.echo(f"source: {config.source or '<defaults>'}")
    typer.echo(f"polling_period_s: {config.polling_period_s}")
    timeout = config.enumerate_timeout_s if config.enumerate_timeout_s is not None else "none"
    typer.echo(f"enumerate_timeout_s: {timeout}")
    typer.echo(f"storage_version: {config.storage_version}")
    typer.echo(f"transport: {config.transport or '<unset>'}")


@app.command("watch")
def watch(
    config_path: Path | None = typer.Option(None, "--config", help="Path to config.yaml"),
    transport: str | None = typer.Option(None, "--transport", help="Transport factory as module:attr"),
    period: float | None = typer.Option(None, "--period", min=0.01, help="Polling period in seconds"),
    duration: float | None = typer.Option(None, "--duration", min=0, help="Stop after this many seconds"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Watch for connected and disconnected devices and print each change."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = _load(config_path, transport, period)
        manager = build_manager(config=config, notifier=EchoNotifier())
        _echo_hooks(manager)
        asyncio.run(manager.run(duration_s=duration))
    except KeywatchError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        raise typer.Exit(code=130) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
