"""
Join Command
============

Joins this host to an existing cluster. The admin console address and the
join token are printed by the admin console of the cluster:

    embedctl join 10.0.0.10:30000 <token>

The join command fetched with the token carries the proxy settings, the
ports and the k0s token; nothing is read from local proxy flags.
"""

import logging
from typing import Optional

import typer

from embedctl.config import Config
from embedctl.modules.k0s.join import JoinCoordinator
from embedctl.modules.k0s.models import InstallOptions
from .common import DefaultCommandGroup, cancel_event, reported_errors, require_root

logger = logging.getLogger("embedctl.commands.join")

app = typer.Typer(cls=DefaultCommandGroup, help=f"Join the current node to an existing {Config.BINARY_NAME} cluster")


@app.command("run", help="Join the current node to the cluster (default)")
def join(
    url: str = typer.Argument(..., help="Admin console address, host:port"),
    token: str = typer.Argument(..., help="Join token"),
    no_prompt: bool = typer.Option(False, "--no-prompt", help="Do not prompt user when it is not necessary"),
    network_interface: Optional[str] = typer.Option(
        None, "--network-interface", help="The network interface to use for the cluster",
    ),
    enable_ha: bool = typer.Option(False, "--enable-ha", help="Enable high availability"),
):
    """Join the current node to an existing cluster."""
    require_root("join")
    options = InstallOptions(
        no_prompt=no_prompt,
        network_interface=network_interface,
        enable_ha=enable_ha,
        cancel=cancel_event,
    )
    with reported_errors():
        JoinCoordinator(url, token, options).join()


@app.command("run-preflights", hidden=True)
def run_preflights(
    url: str = typer.Argument(..., help="Admin console address, host:port"),
    token: str = typer.Argument(..., help="Join token"),
    no_prompt: bool = typer.Option(False, "--no-prompt", help="Do not prompt user when it is not necessary"),
    network_interface: Optional[str] = typer.Option(None, "--network-interface"),
    airgap_bundle: Optional[str] = typer.Option(None, "--airgap-bundle", hidden=True, help="Path to the air gap bundle"),
):
    """Run the join host preflights without joining."""
    require_root("run-preflights")
    options = InstallOptions(
        no_prompt=no_prompt,
        network_interface=network_interface,
        is_airgap=bool(airgap_bundle),
        cancel=cancel_event,
    )
    with reported_errors():
        JoinCoordinator(url, token, options).run_preflights()
