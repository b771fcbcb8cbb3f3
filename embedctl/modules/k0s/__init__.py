"""k0s cluster bootstrap.

This package installs a single node k0s cluster, or joins a node to an
existing one. It's organized into several focused modules:

- images: Embedded image manifest
- configuration: Cluster configuration rendering and image enumeration
- overrides: Embedded and end-user configuration overrides
- proxy: Proxy and no-proxy validation
- preflights: Host preflight execution and gating
- service: k0s service management
- verification: Readiness checks
- installer: Local installation state machine
- join: Joining an existing cluster
- metrics: Installation telemetry
- models: Data models and types
"""

from .configuration import list_images, render_config, write_config
from .errors import EmbedctlError, NothingElseToAdd, PhaseError
from .images import get_metadata
from .installer import InstallStateMachine
from .join import JoinCoordinator, fetch_join_command
from .models import InstallOptions, InstallPhase, InstallState, JoinCommand, ProxySpec
from .overrides import patch_config
from .preflights import run_host_preflights
from .proxy import check_local_reachability, validate_proxy
from .verification import wait_for_k0s

__all__ = [
    'InstallStateMachine',
    'JoinCoordinator',
    'fetch_join_command',
    'render_config',
    'write_config',
    'list_images',
    'patch_config',
    'run_host_preflights',
    'check_local_reachability',
    'validate_proxy',
    'wait_for_k0s',
    'get_metadata',
    'EmbedctlError',
    'NothingElseToAdd',
    'PhaseError',
    'InstallOptions',
    'InstallPhase',
    'InstallState',
    'JoinCommand',
    'ProxySpec',
]
