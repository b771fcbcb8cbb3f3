"""Local node installation.

The installation is an ordered list of named phases. The driver loop runs
them one after the other and stops at the first failure; there is no
rollback, and every phase is safe to run again on a fresh attempt.

Telemetry brackets the whole run: ``started`` is reported once the entry
guard has passed, ``finished`` on every exit path. A telemetry failure is
logged and never replaces the phase error.
"""

import logging
from typing import Callable, List, Optional, Tuple

from embedctl.config import Config
from . import configuration, goods, overrides, preflights, release, service
from .addons import AddonApplier
from .errors import AlreadyInstalled, Cancelled, PhaseError
from .license import License, check_license_matches
from .metrics import MetricsReporter
from .models import ClusterConfig, InstallOptions, InstallPhase, InstallState, PhaseResult, PreflightContext
from .verification import wait_for_k0s

logger = logging.getLogger("embedctl.k0s.installer")

Phase = Tuple[InstallPhase, Callable[[], None]]


def proxy_registry_url() -> str:
    return f"https://{Config.PROXY_REGISTRY_ADDRESS}"


class InstallStateMachine:
    """Drives a single node controller installation."""

    def __init__(
        self,
        options: InstallOptions,
        addons: Optional[AddonApplier] = None,
        reporter: Optional[MetricsReporter] = None,
    ):
        self.options = options
        self.addons = addons or AddonApplier(no_prompt=options.no_prompt)
        self.reporter = reporter or MetricsReporter(proxy=options.proxy)
        self.state = InstallState()
        self.license: Optional[License] = None

    def phases(self) -> List[Phase]:
        """Ordered phases of this run."""
        return [
            (InstallPhase.CHECKING_LICENSE, self.check_license),
            (InstallPhase.MATERIALIZING, self.materialize),
            (InstallPhase.PREFLIGHT_GATING, self.run_preflights),
            (InstallPhase.CONFIG_RENDERING, self.ensure_config),
            (InstallPhase.INSTALLING, self.install),
            (InstallPhase.POST_INSTALL, self.post_install),
            (InstallPhase.WAITING_READY, self.wait_ready),
            (InstallPhase.OUTRO, self.outro),
        ]

    def guard(self) -> None:
        """Refuse to run on a host that already has an installation.

        Raises:
            AlreadyInstalled: If the install marker exists
        """
        logger.debug(f"Checking if {Config.BINARY_NAME} is already installed")
        if not service.is_already_installed():
            return
        logger.error("❌ An installation has been detected on this machine.")
        logger.info("If you want to reinstall you need to remove the existing installation")
        logger.info("first. You can do this by running the following command:")
        logger.info(f"\n  sudo ./{Config.BINARY_NAME} node reset\n")
        raise AlreadyInstalled(str(Config.K0S_CONFIG_PATH))

    def run(self) -> InstallState:
        """Run every phase in order.

        Returns:
            InstallState: Final state, in the INSTALLED phase

        Raises:
            AlreadyInstalled: If the host already has an installation
            PhaseError: Wrapping the first phase failure
        """
        self.guard()
        self._report(self.report_started)

        for phase, step in self.phases():
            self.state.update_phase(phase)
            logger.debug(f"Entering phase {phase.value}")
            try:
                if self.options.cancel.is_set():
                    raise Cancelled("operation cancelled")
                step()
            except Exception as e:
                self.state.record(PhaseResult(phase, e))
                err = PhaseError(phase.value, e)
                self._report(self.report_finished, err)
                raise err from e
            self.state.record(PhaseResult(phase))

        self.state.update_phase(InstallPhase.INSTALLED)
        self._report(self.report_finished, None)
        return self.state

    def preflight_only(self) -> None:
        """Materialize the binaries and gate on host preflights, nothing else.

        Raises:
            PhaseError: Wrapping the first failure
        """
        for phase, step in (
            (InstallPhase.MATERIALIZING, self.materialize),
            (InstallPhase.PREFLIGHT_GATING, self.run_preflights),
        ):
            try:
                step()
            except Exception as e:
                raise PhaseError(phase.value, e) from e
        logger.info("✅ Host preflights completed")

    @staticmethod
    def _report(hook: Callable, *args) -> None:
        try:
            hook(*args)
        except Exception as e:
            logger.debug(f"Unable to report metrics: {e}")

    def report_started(self) -> None:
        self.reporter.install_started()

    def report_finished(self, err: Optional[Exception]) -> None:
        self.reporter.install_finished(err)

    # Phases

    def check_license(self) -> None:
        logger.debug("Checking license matches")
        self.license = check_license_matches(self.options.license_path)
        if self.license is not None:
            self.reporter.license_id = self.license.spec.license_id

    def materialize(self) -> None:
        goods.materialize()

    def preflight_context(self) -> PreflightContext:
        api_url, registry_url = "", ""
        if self.license is not None:
            api_url = self.license.spec.endpoint
            registry_url = proxy_registry_url()
        return preflights.build_context(api_url, registry_url, self.options)

    def run_preflights(self) -> None:
        spec = self.addons.host_preflights(self.preflight_context())
        preflights.run_host_preflights(spec, self.options.no_prompt, proxy=self.options.proxy)

    def override_fragments(self) -> List[overrides.Fragment]:
        """Override fragments in the order they apply: embedded, then user."""
        return overrides.fragments_for_install(
            release.get_embedded_cluster_config(),
            self.options.overrides_path,
        )

    def build_config(self) -> ClusterConfig:
        cfg = configuration.render_config()
        return overrides.patch_config(cfg, self.override_fragments())

    def ensure_config(self) -> None:
        logger.debug("Creating k0s configuration file")
        configuration.write_config(self.build_config())

    def install_flags(self) -> List[str]:
        return service.install_flags()

    def install(self) -> None:
        service.install_k0s(self.install_flags(), self.options.proxy)

    def post_install(self) -> None:
        service.run_post_install(Config.K0S_SERVICE_UNIT)

    def wait_ready(self) -> None:
        wait_for_k0s(self.options.cancel)

    def outro(self) -> None:
        self.addons.outro()
        logger.info(f"✅ {Config.BINARY_NAME} is installed, KUBECONFIG is {self.addons.kubeconfig}")
