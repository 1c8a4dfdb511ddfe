#!/usr/bin/env python3
"""
Stackwatch - Main Entry Point

This is the thin orchestration layer that:
1. Loads configuration
2. Initializes modules
3. Runs the service until a signal or a fatal error

All business logic is in the modules, following black box principles.
"""

import asyncio
import logging
import signal
import socket
import sys
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv

from stackwatch import __version__
from stackwatch.config.provider import ServiceConfig
from stackwatch.errors import StackwatchError
from stackwatch.logging_config import configure_logging
from stackwatch.modules.service import App

logger = logging.getLogger("stackwatch")


async def serve(config: ServiceConfig) -> None:
    """Initialise the app and run it until SIGINT/SIGTERM."""
    app = await App.initialise(config)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C still interrupts.
            pass

    try:
        await app.start(stop)
    finally:
        await app.close()


@click.group()
@click.version_option(__version__, prog_name="stackwatch")
def cli():
    """Git driven compose stack deployer."""


@cli.command()
@click.option("--target", envvar="STACKWATCH_TARGET", default=None,
              help="Git URL of the config repository")
@click.option("--target-branch", envvar="STACKWATCH_TARGET_BRANCH", default="main",
              show_default=True, help="Branch of the config repository")
@click.option("--hostname", envvar="STACKWATCH_HOSTNAME", default=socket.gethostname,
              help="Hostname used to select targets")
@click.option("--no-ssh", envvar="STACKWATCH_NO_SSH", is_flag=True, default=False,
              help="Disable SSH agent authentication for git")
@click.option("--directory", envvar="STACKWATCH_DIRECTORY", default="./cache",
              show_default=True, type=click.Path(file_okay=False, path_type=Path),
              help="Directory for all checkouts")
@click.option("--check-interval", envvar="STACKWATCH_CHECK_INTERVAL", default=10.0,
              show_default=True, type=float, help="Seconds between git polls")
@click.option("--vault-addr", envvar="VAULT_ADDR", default="",
              help="Vault address; empty selects in-memory secrets")
@click.option("--vault-token", envvar="VAULT_TOKEN", default="", help="Vault token")
@click.option("--vault-path", envvar="VAULT_PATH", default="secret", show_default=True,
              help="KV v2 mount secrets are read from")
@click.option("--vault-renewal", envvar="VAULT_RENEWAL", default=86400.0, show_default=True,
              type=float, help="Seconds between Vault token renewals")
@click.option("--deploy-timeout", envvar="STACKWATCH_DEPLOY_TIMEOUT", default=600.0,
              show_default=True, type=float, help="Seconds before a deployment is killed")
@click.option("--log-level", envvar="LOG_LEVEL", default="INFO", show_default=True,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
def run(
    target: Optional[str],
    target_branch: str,
    hostname: str,
    no_ssh: bool,
    directory: Path,
    check_interval: float,
    vault_addr: str,
    vault_token: str,
    vault_path: str,
    vault_renewal: float,
    deploy_timeout: float,
    log_level: str,
):
    """Watch the configured targets and deploy them on change."""
    configure_logging(log_level, secrets=(vault_token,))

    try:
        config = ServiceConfig(
            target=target or None,
            hostname=hostname,
            target_branch=target_branch,
            no_ssh=no_ssh,
            directory=directory,
            check_interval=check_interval,
            vault_address=vault_addr,
            vault_token=vault_token,
            vault_path=vault_path,
            vault_renewal=vault_renewal,
            deploy_timeout=deploy_timeout,
        )
        asyncio.run(serve(config))
    except StackwatchError as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Stopped by user")
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)

    logger.info("Stackwatch shut down")


def main():
    """Main entry point."""
    load_dotenv()
    cli()


if __name__ == "__main__":
    main()
