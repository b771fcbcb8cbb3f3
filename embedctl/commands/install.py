"""
Install Command
===============

Installs a single node k0s cluster on this host:

- checks the license against the release embedded in the binary
- materializes the embedded binaries and runs the host preflights
- renders and patches the k0s configuration, then installs and starts k0s
- waits for the node and applies the addons

Environment Variables:
- HTTP_PROXY, HTTPS_PROXY, NO_PROXY: defaults for the proxy flags
"""

import logging
from typing import Optional

import typer

from embedctl.config import Config
from embedctl.modules.k0s.installer import InstallStateMachine
from embedctl.modules.k0s.models import InstallOptions
from .common import DefaultCommandGroup, cancel_event, proxy_from_flags, reported_errors, require_root

logger = logging.getLogger("embedctl.commands.install")

app = typer.Typer(cls=DefaultCommandGroup, help=f"Install {Config.BINARY_NAME}")


def build_options(
    no_prompt: bool = False,
    license_path: Optional[str] = None,
    overrides_path: Optional[str] = None,
    network_interface: Optional[str] = None,
    http_proxy: Optional[str] = None,
    https_proxy: Optional[str] = None,
    no_proxy: Optional[str] = None,
    admin_console_port: int = Config.DEFAULT_ADMIN_CONSOLE_PORT,
    local_artifact_mirror_port: int = Config.DEFAULT_LOCAL_ARTIFACT_MIRROR_PORT,
    airgap_bundle: Optional[str] = None,
) -> InstallOptions:
    return InstallOptions(
        no_prompt=no_prompt,
        license_path=license_path,
        overrides_path=overrides_path,
        network_interface=network_interface,
        proxy=proxy_from_flags(http_proxy, https_proxy, no_proxy, network_interface),
        admin_console_port=admin_console_port,
        local_artifact_mirror_port=local_artifact_mirror_port,
        is_airgap=bool(airgap_bundle),
        cancel=cancel_event,
    )


@app.command("run", help=f"Install {Config.BINARY_NAME} (default)")
def install(
    no_prompt: bool = typer.Option(False, "--no-prompt", help="Do not prompt user when it is not necessary"),
    license_path: Optional[str] = typer.Option(None, "--license", "-l", help="Path to the application license file"),
    overrides_path: Optional[str] = typer.Option(
        None, "--overrides", hidden=True,
        help="File with an EmbeddedClusterConfig object to override the default configuration",
    ),
    network_interface: Optional[str] = typer.Option(
        None, "--network-interface", help="The network interface to use for the cluster",
    ),
    http_proxy: Optional[str] = typer.Option(None, "--http-proxy", envvar="HTTP_PROXY", help="HTTP proxy to use"),
    https_proxy: Optional[str] = typer.Option(None, "--https-proxy", envvar="HTTPS_PROXY", help="HTTPS proxy to use"),
    no_proxy: Optional[str] = typer.Option(None, "--no-proxy", envvar="NO_PROXY", help="Comma separated no-proxy list"),
    admin_console_port: int = typer.Option(
        Config.DEFAULT_ADMIN_CONSOLE_PORT, "--admin-console-port", help="Port on which the admin console will be served",
    ),
    local_artifact_mirror_port: int = typer.Option(
        Config.DEFAULT_LOCAL_ARTIFACT_MIRROR_PORT, "--local-artifact-mirror-port",
        help="Port on which the local artifact mirror will be served",
    ),
):
    """Install a single node cluster on this host."""
    require_root("install")
    with reported_errors():
        options = build_options(
            no_prompt, license_path, overrides_path, network_interface,
            http_proxy, https_proxy, no_proxy, admin_console_port, local_artifact_mirror_port,
        )
        InstallStateMachine(options).run()


@app.command("run-preflights", hidden=True)
def run_preflights(
    no_prompt: bool = typer.Option(False, "--no-prompt", help="Do not prompt user when it is not necessary"),
    license_path: Optional[str] = typer.Option(None, "--license", "-l", help="Path to the application license file"),
    network_interface: Optional[str] = typer.Option(None, "--network-interface"),
    http_proxy: Optional[str] = typer.Option(None, "--http-proxy", envvar="HTTP_PROXY"),
    https_proxy: Optional[str] = typer.Option(None, "--https-proxy", envvar="HTTPS_PROXY"),
    no_proxy: Optional[str] = typer.Option(None, "--no-proxy", envvar="NO_PROXY"),
    admin_console_port: int = typer.Option(Config.DEFAULT_ADMIN_CONSOLE_PORT, "--admin-console-port"),
    local_artifact_mirror_port: int = typer.Option(
        Config.DEFAULT_LOCAL_ARTIFACT_MIRROR_PORT, "--local-artifact-mirror-port",
    ),
    airgap_bundle: Optional[str] = typer.Option(None, "--airgap-bundle", hidden=True, help="Path to the air gap bundle"),
):
    """Run the host preflights without installing."""
    require_root("run-preflights")
    with reported_errors():
        options = build_options(
            no_prompt, license_path, None, network_interface,
            http_proxy, https_proxy, no_proxy, admin_console_port, local_artifact_mirror_port,
            airgap_bundle,
        )
        machine = InstallStateMachine(options)
        machine.check_license()
        machine.preflight_only()
