"""Helpers shared by the install and join commands."""

import logging
import os
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

import typer
from typer.core import TyperGroup

from embedctl.modules.k0s.errors import EmbedctlError, NothingElseToAdd, PhaseError
from embedctl.modules.k0s.models import ProxySpec
from embedctl.modules.k0s.proxy import include_local_ip_in_no_proxy

logger = logging.getLogger("embedctl.commands")

# Set by the SIGTERM handler; every wait in the engine observes it
cancel_event = threading.Event()

_HELP_FLAGS = ('--help', '-h')


class DefaultCommandGroup(TyperGroup):
    """A group that runs its default command unless a subcommand is named.

    ``embedctl join URL TOKEN`` runs the default command while
    ``embedctl join run-preflights URL TOKEN`` runs the subcommand.
    """

    default_command = 'run'

    def parse_args(self, ctx, args):
        if not args or (args[0] not in self.commands and args[0] not in _HELP_FLAGS):
            args = [self.default_command] + list(args)
        return super().parse_args(ctx, args)


def require_root(command: str) -> None:
    """Exit unless running as root."""
    if os.geteuid() != 0:
        logger.error(f"❌ {command} command must be run as root")
        raise typer.Exit(code=1)


@contextmanager
def reported_errors() -> Iterator[None]:
    """Turn engine and host I/O errors into a logged message and exit code 1.

    Errors that already printed their details (failed preflights, an
    existing installation) exit without an extra line.
    """
    try:
        yield
    except EmbedctlError as e:
        cause = e.cause if isinstance(e, PhaseError) else e
        if not isinstance(cause, NothingElseToAdd):
            logger.error(f"❌ {e}")
        logger.debug("Command failed", exc_info=True)
        raise typer.Exit(code=1) from e
    except OSError as e:
        logger.error(f"❌ {e}")
        logger.debug("Command failed", exc_info=True)
        raise typer.Exit(code=1) from e


def proxy_from_flags(
    http_proxy: Optional[str],
    https_proxy: Optional[str],
    no_proxy: Optional[str],
    network_interface: Optional[str] = None,
) -> ProxySpec:
    """Proxy settings from the command line.

    When a proxy is set, this node's address and the cluster CIDRs are added
    to the no-proxy list.
    """
    proxy = ProxySpec(http_proxy=http_proxy or "", https_proxy=https_proxy or "", no_proxy=no_proxy or "")
    if proxy.enabled:
        proxy = include_local_ip_in_no_proxy(proxy, network_interface)
        logger.debug(f"Using no-proxy {proxy.no_proxy}")
    return proxy
