"""Joining a node to an existing cluster.

The join command (version, installation spec, k0s token and overrides) is
fetched from the admin console of the cluster. Nothing on the host is
touched until the version gate and the proxy validation have passed; then
the shared install sequence runs with the join's settings, optionally
followed by HA promotion.
"""

import dataclasses
import logging
from typing import List, Optional

import requests
import typer
from kubernetes.client.rest import ApiException
from kubernetes.config import ConfigException
from pydantic import ValidationError

from embedctl.config import Config
from . import overrides, preflights, service
from .addons import AddonApplier
from .errors import Cancelled, ConfigurationError, HAPromotionError, JoinTokenError, VersionMismatchError
from .installer import InstallStateMachine, Phase, proxy_registry_url
from .metrics import MetricsReporter
from .models import InstallOptions, InstallPhase, InstallState, JoinCommand, PreflightContext
from .proxy import validate_proxy

logger = logging.getLogger("embedctl.k0s.join")

JOIN_ENDPOINT = '/api/v1/embedded-cluster/join'


def fetch_join_command(url: str, token: str, cancel=None) -> JoinCommand:
    """Exchange ``token`` for the join command at the admin console ``url``.

    Args:
        url: Admin console address, ``host:port``
        token: Join token printed by the admin console
        cancel: Optional cancellation event checked before the request

    Raises:
        Cancelled: If the run was cancelled
        JoinTokenError: If the request fails or the answer cannot be decoded
    """
    if cancel is not None and cancel.is_set():
        raise Cancelled("cancelled before fetching the join token")
    endpoint = f"https://{url}{JOIN_ENDPOINT}"
    logger.debug(f"Fetching join command from {endpoint}")
    try:
        # the admin console serves a self-signed certificate
        response = requests.get(
            endpoint,
            headers={'Authorization': token},
            verify=False,
            timeout=Config.API_TIMEOUT,
        )
    except requests.RequestException as e:
        raise JoinTokenError(f"unable to get join token: {e}") from e
    if response.status_code != 200:
        raise JoinTokenError(f"unexpected status code: {response.status_code} - {response.text}")
    try:
        return JoinCommand.model_validate(response.json())
    except (ValueError, ValidationError) as e:
        raise JoinTokenError(f"unable to decode join command: {e}") from e


def check_version(jcmd: JoinCommand, binary_version: Optional[str] = None) -> None:
    """Reject a join command issued by a cluster on another version.

    Raises:
        VersionMismatchError: If the versions differ in any way
    """
    binary_version = binary_version or Config.VERSION
    if jcmd.version != binary_version:
        raise VersionMismatchError(binary_version, jcmd.version)


def admin_port_from_url(url: str) -> int:
    """Admin console port from a ``host:port`` join address.

    Raises:
        ConfigurationError: If ``url`` is not of the form ``host:port``
    """
    parts = url.split(':')
    if len(parts) != 2:
        raise ConfigurationError(f"unable to split url: {url}")
    try:
        return int(parts[1])
    except ValueError as e:
        raise ConfigurationError(f"unable to convert port to int: {e}") from e


def local_artifact_mirror_port(jcmd: JoinCommand) -> int:
    mirror = jcmd.installation_spec.local_artifact_mirror
    if mirror is None or not mirror.port:
        return Config.DEFAULT_LOCAL_ARTIFACT_MIRROR_PORT
    return mirror.port


def options_for_join(url: str, jcmd: JoinCommand, options: InstallOptions) -> InstallOptions:
    """Local options overlaid with the settings carried by the join command."""
    return dataclasses.replace(
        options,
        proxy=jcmd.proxy,
        admin_console_port=admin_port_from_url(url),
        local_artifact_mirror_port=local_artifact_mirror_port(jcmd),
    )


class JoinSequence(InstallStateMachine):
    """The install sequence parameterized with a join command."""

    def __init__(
        self,
        jcmd: JoinCommand,
        options: InstallOptions,
        addons: Optional[AddonApplier] = None,
        reporter: Optional[MetricsReporter] = None,
    ):
        reporter = reporter or MetricsReporter(
            base_url=jcmd.installation_spec.metrics_base_url or None,
            cluster_id=jcmd.cluster_id or None,
            proxy=options.proxy,
        )
        super().__init__(options, addons=addons, reporter=reporter)
        self.jcmd = jcmd
        self.token_file: Optional[str] = None

    def phases(self) -> List[Phase]:
        steps = [
            (InstallPhase.MATERIALIZING, self.materialize),
            (InstallPhase.PREFLIGHT_GATING, self.run_preflights),
        ]
        if self.jcmd.is_controller:
            steps.append((InstallPhase.CONFIG_RENDERING, self.ensure_config))
        steps += [
            (InstallPhase.INSTALLING, self.install),
            (InstallPhase.POST_INSTALL, self.post_install),
            (InstallPhase.WAITING_READY, self.wait_ready),
        ]
        return steps

    def report_started(self) -> None:
        self.reporter.join_started()

    def report_finished(self, err: Optional[Exception]) -> None:
        self.reporter.join_finished(err)

    def preflight_context(self) -> PreflightContext:
        return preflights.build_context(
            self.jcmd.installation_spec.metrics_base_url,
            proxy_registry_url(),
            self.options,
        )

    def override_fragments(self) -> List[overrides.Fragment]:
        return [
            (overrides.EMBEDDED, self.jcmd.k0s_unsupported_overrides),
            (overrides.USER, self.jcmd.end_user_k0s_config_overrides),
        ]

    def install_flags(self) -> List[str]:
        return service.join_flags(self.jcmd, self.token_file)

    def install(self) -> None:
        self.token_file = service.write_join_token(self.jcmd.k0s_token)
        logger.debug(f"Wrote k0s join token to {self.token_file}")
        super().install()

    def post_install(self) -> None:
        unit = Config.K0S_SERVICE_UNIT if self.jcmd.is_controller else Config.K0S_WORKER_UNIT
        service.run_post_install(unit)


class JoinCoordinator:
    """Drives a node join from the admin console address and join token."""

    def __init__(self, url: str, token: str, options: InstallOptions, addons: Optional[AddonApplier] = None):
        self.url = url
        self.token = token
        self.options = options
        self.addons = addons or AddonApplier(no_prompt=options.no_prompt)
        self.jcmd: Optional[JoinCommand] = None

    def prepare(self) -> InstallOptions:
        """Fetch and validate the join command.

        Returns:
            InstallOptions: Options carrying the join's proxy and ports

        Raises:
            JoinTokenError: If the join command cannot be fetched
            VersionMismatchError: If the cluster runs another version
            ProxyConfigError: If the no-proxy list does not exempt this node
        """
        logger.info("🔑 Fetching join token")
        self.jcmd = fetch_join_command(self.url, self.token, self.options.cancel)

        logger.debug("Checking binary and cluster versions")
        check_version(self.jcmd)

        logger.debug("Validating proxy configuration")
        validate_proxy(self.jcmd.proxy, self.options.network_interface)

        return options_for_join(self.url, self.jcmd, self.options)

    def sequence(self, options: InstallOptions) -> JoinSequence:
        return JoinSequence(self.jcmd, options, addons=self.addons)

    def run_preflights(self) -> None:
        """Validate the join and gate on host preflights without installing."""
        options = self.prepare()
        self.sequence(options).preflight_only()

    def join(self) -> InstallState:
        """Join this host to the cluster.

        Raises:
            AlreadyInstalled: If the host already has an installation
            PhaseError: Wrapping the first failing install phase
            HAPromotionError: If HA promotion failed; the join itself completed
        """
        options = self.prepare()
        state = self.sequence(options).run()
        logger.info("✅ Node has joined the cluster")

        if self.options.enable_ha and self.jcmd.is_controller:
            self.maybe_enable_ha()
        return state

    def maybe_enable_ha(self) -> bool:
        """Promote the cluster to HA when enough controllers have joined.

        Returns:
            bool: True if HA was enabled

        Raises:
            HAPromotionError: If the cluster could not be queried or updated
        """
        try:
            can_enable = self.addons.can_enable_ha()
        except (ApiException, ConfigException, OSError) as e:
            raise HAPromotionError(f"unable to check if high availability can be enabled: {e}") from e
        if not can_enable:
            logger.info("High availability requires at least three controller nodes, skipping")
            return False
        if not self.options.no_prompt:
            logger.info("You can now enable high availability for this cluster.")
            if not typer.confirm("Do you want to enable high availability?", default=False):
                logger.info("High availability was not enabled")
                return False
        self.addons.enable_ha()
        return True
