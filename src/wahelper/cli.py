"""wahelper CLI: WhatsApp session agent with a local HTTP control plane.

Usage:
    wahelper --mode both                     # run the daemon, receive + send
    wahelper --mode send --port 7775         # send-only control plane
    wahelper send 919876543210 hello         # run one command and exit
    wahelper pair-phone 919876543210         # request a linking code, stay interactive
    wahelper commands                        # list every command and its usage
    wahelper config                          # show configuration
    wahelper config mode=both                # set configuration
"""

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from wahelper.config import WahelperConfig

console = Console()

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def _run_async(coro):
    """Run async function from sync context."""
    return asyncio.run(coro)


class WahelperCLI(click.Group):
    """Custom group that routes anything that is not a CLI subcommand to 'run'."""

    def parse_args(self, ctx, args):
        if not args or (args[0] not in self.commands and args[0] not in ("--help", "-h")):
            args = ["run"] + args
        return super().parse_args(ctx, args)


@click.group(cls=WahelperCLI)
def cli():
    """wahelper: keep a WhatsApp session alive and drive it over HTTP or stdin.

    Any arguments that are not a wahelper subcommand start the daemon; trailing
    positional arguments are run once as an immediate command:
        wahelper --mode both
        wahelper send 919876543210 "hello there"
    """
    pass


@cli.command(context_settings={"allow_interspersed_args": False})
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.option("--debug", is_flag=True, help="Enable debug logs")
@click.option("--db-dialect", default=None, help="Session store dialect handed to the transport")
@click.option("--db-address", default=None, help="Session store address handed to the transport")
@click.option("--request-full-sync", is_flag=True, help="Request full (1 year) history sync when logging in")
@click.option("--port", "http_port", type=int, default=None, help="Control plane / delivery port")
@click.option("--mode", type=click.Choice(["none", "send", "both"]), default=None, help="Operating mode")
@click.option("--save-media", is_flag=True, help="Save received media under media/")
@click.option("--auto-delete-media", is_flag=True, help="Delete saved media 30 seconds after delivery")
@click.option("--transport", default=None, help="Transport factory as 'module:factory'")
@click.option("--work-dir", type=click.Path(file_okay=False, path_type=Path), default=None)
@click.option("--no-stdin", is_flag=True, help="Do not read commands from stdin")
@click.argument("command", nargs=-1, type=click.UNPROCESSED)
def run(command, log_level, debug, db_dialect, db_address, request_full_sync, http_port, mode,
        save_media, auto_delete_media, transport, work_dir, no_stdin):
    """Run the session daemon, optionally executing one command first.

    Examples:
        wahelper run --mode both
        wahelper run sendpoll 919876543210 1 Lunch? -- Pizza / Sushi
    """
    cfg = WahelperConfig.load()
    if log_level:
        cfg.log_level = log_level.upper()
    if debug:
        cfg.debug = True
    if db_dialect:
        cfg.db_dialect = db_dialect
    if db_address:
        cfg.db_address = db_address
    if request_full_sync:
        cfg.request_full_sync = True
    if http_port is not None:
        cfg.http_port = http_port
    if mode:
        cfg.set_value("mode", mode)
    if save_media:
        cfg.save_media = True
    if auto_delete_media:
        cfg.auto_delete_media = True
    if transport:
        cfg.transport = transport
    if work_dir is not None:
        cfg.work_dir = work_dir

    logging.basicConfig(
        level=getattr(logging, cfg.effective_log_level, logging.INFO),
        format=LOG_FORMAT,
    )

    from wahelper.daemon import WahelperDaemon

    try:
        daemon = WahelperDaemon(cfg, immediate=command, read_stdin=not no_stdin, console=console)
    except (RuntimeError, ImportError, AttributeError) as e:
        console.print(f"[bold red]Failed to initialize WhatsApp client:[/] {e}")
        sys.exit(1)
    sys.exit(_run_async(daemon.run()))


@cli.command()
def commands():
    """List every command accepted over HTTP, stdin or the command line."""
    from wahelper.commands.registry import Command, registered

    usage = registered()
    table = Table(title="Commands")
    table.add_column("Command", style="cyan")
    table.add_column("Usage")
    table.add_row("stop", "stop (shut down after a 1 second grace delay)")
    table.add_row("restart", "restart (restart the HTTP control plane only)")
    for cmd in Command:
        table.add_row(cmd.value, usage[cmd].usage if cmd in usage else "")
    console.print(table)


@cli.command()
@click.argument("key_value", nargs=-1)
def config(key_value):
    """View or set wahelper configuration.

    Examples:
        wahelper config                          # show all
        wahelper config mode=both                # receive and send
        wahelper config timing.pair_timeout=5    # longer pairing window
    """
    cfg = WahelperConfig.load()
    if not key_value:
        console.print_json(json.dumps(cfg.to_dict()))
        return

    kv = " ".join(key_value)
    if "=" not in kv:
        console.print("[yellow]Usage: wahelper config key=value[/]")
        return
    key, value = kv.split("=", 1)
    key = key.strip()
    value = value.strip()
    try:
        cfg.set_value(key, value)
    except KeyError:
        console.print(f"[red]Unknown config key: {key}[/]")
        return
    except ValueError as e:
        console.print(f"[red]Invalid value for {key}: {e}[/]")
        return
    cfg.save()
    console.print(f"[green]Set {key} = {value}[/]")


def main():
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
