"""Data models for the k0s bootstrap engine."""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import PreflightRunError


class InstallPhase(str, Enum):
    """Phases of a node installation, in execution order."""
    NOT_INSTALLED = 'not_installed'
    CHECKING_LICENSE = 'checking_license'
    MATERIALIZING = 'materializing'
    PREFLIGHT_GATING = 'preflight_gating'
    CONFIG_RENDERING = 'config_rendering'
    INSTALLING = 'installing'
    POST_INSTALL = 'post_install'
    WAITING_READY = 'waiting_ready'
    OUTRO = 'outro'
    INSTALLED = 'installed'


class Verdict(str, Enum):
    """Classification of a single host preflight result."""
    PASS = 'pass'
    WARN = 'warn'
    FAIL = 'fail'


class ProxySpec(BaseModel):
    """Outbound proxy settings; no_proxy is a comma separated list."""
    model_config = ConfigDict(populate_by_name=True)

    http_proxy: str = Field(default="", alias="httpProxy")
    https_proxy: str = Field(default="", alias="httpsProxy")
    no_proxy: str = Field(default="", alias="noProxy")

    @field_validator('http_proxy', 'https_proxy', 'no_proxy', mode='before')
    @classmethod
    def none_to_empty(cls, v: Any) -> str:
        return v or ""

    @property
    def enabled(self) -> bool:
        return bool(self.http_proxy or self.https_proxy)

    def no_proxy_entries(self) -> List[str]:
        """Return the no-proxy list in order, with blanks removed."""
        return [entry.strip() for entry in self.no_proxy.split(',') if entry.strip()]

    def to_env(self) -> Dict[str, str]:
        """Environment variables for a child process, upper and lower case."""
        env: Dict[str, str] = {}
        for name, value in (
            ('HTTP_PROXY', self.http_proxy),
            ('HTTPS_PROXY', self.https_proxy),
            ('NO_PROXY', self.no_proxy),
        ):
            if value:
                env[name] = value
                env[name.lower()] = value
        return env

    def to_requests(self) -> Optional[Dict[str, str]]:
        """Proxy mapping for requests, or None to defer to the environment."""
        if not self.enabled:
            return None
        proxies = {}
        if self.http_proxy:
            proxies['http'] = self.http_proxy
        if self.https_proxy:
            proxies['https'] = self.https_proxy
        return proxies


class LocalArtifactMirror(BaseModel):
    port: int


class InstallationSpec(BaseModel):
    """Installation settings handed to a joining node."""
    model_config = ConfigDict(populate_by_name=True)

    proxy: Optional[ProxySpec] = None
    metrics_base_url: str = Field(default="", alias="metricsBaseURL")
    local_artifact_mirror: Optional[LocalArtifactMirror] = Field(default=None, alias="localArtifactMirror")


class JoinCommand(BaseModel):
    """Response of the admin console join endpoint. Never persisted."""
    model_config = ConfigDict(populate_by_name=True)

    version: str = Field(alias="version")
    installation_spec: InstallationSpec = Field(default_factory=InstallationSpec, alias="installationSpec")
    cluster_id: str = Field(default="", alias="clusterID")
    k0s_join_command: str = Field(default="/usr/local/bin/k0s install worker", alias="k0sJoinCommand")
    k0s_token: str = Field(default="", alias="k0sToken")
    k0s_unsupported_overrides: str = Field(default="", alias="k0sUnsupportedOverrides")
    end_user_k0s_config_overrides: str = Field(default="", alias="endUserK0sConfigOverrides")

    @property
    def proxy(self) -> ProxySpec:
        return self.installation_spec.proxy or ProxySpec()

    @property
    def is_controller(self) -> bool:
        return 'controller' in self.k0s_join_command.split()


@dataclass
class PreflightRecord:
    """One analyzer verdict."""
    title: str
    message: str
    verdict: Verdict


@dataclass
class PreflightOutput:
    """Aggregated host preflight results."""
    records: List[PreflightRecord] = field(default_factory=list)

    def has_fail(self) -> bool:
        return any(r.verdict == Verdict.FAIL for r in self.records)

    def has_warn(self) -> bool:
        return any(r.verdict == Verdict.WARN for r in self.records)

    def by_verdict(self, verdict: Verdict) -> List[PreflightRecord]:
        return [r for r in self.records if r.verdict == verdict]

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'PreflightOutput':
        """Build from the preflight tool's ``{pass: [], warn: [], fail: []}`` output.

        Raises:
            PreflightRunError: If a verdict list or one of its items is malformed
        """
        records = []
        for verdict in Verdict:
            items = data.get(verdict.value) or []
            if not isinstance(items, list):
                raise PreflightRunError(f"unexpected preflight output: {verdict.value} is not a list")
            for item in items:
                if not isinstance(item, dict):
                    raise PreflightRunError(f"unexpected preflight output item: {item!r}")
                records.append(PreflightRecord(
                    title=item.get('title', ''),
                    message=item.get('message', ''),
                    verdict=verdict,
                ))
        return cls(records=records)


@dataclass
class HostPreflightSpec:
    """Collectors and analyzers for host preflights."""
    collectors: List[Dict[str, Any]] = field(default_factory=list)
    analyzers: List[Dict[str, Any]] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.collectors and not self.analyzers

    def extend(self, other: 'HostPreflightSpec') -> None:
        self.collectors.extend(other.collectors)
        self.analyzers.extend(other.analyzers)


@dataclass
class PreflightContext:
    """Values the host preflight templates are rendered with."""
    replicated_api_url: str = ""
    proxy_registry_url: str = ""
    is_airgap: bool = False
    proxy: ProxySpec = field(default_factory=ProxySpec)
    admin_console_port: int = 30000
    local_artifact_mirror_port: int = 50000

    def as_template_vars(self) -> Dict[str, Any]:
        return {
            'replicated_api_url': self.replicated_api_url,
            'proxy_registry_url': self.proxy_registry_url,
            'is_airgap': self.is_airgap,
            'http_proxy': self.proxy.http_proxy,
            'https_proxy': self.proxy.https_proxy,
            'no_proxy': self.proxy.no_proxy,
            'admin_console_port': self.admin_console_port,
            'local_artifact_mirror_port': self.local_artifact_mirror_port,
        }


@dataclass
class InstallOptions:
    """Everything an install or join run needs from the command line."""
    no_prompt: bool = False
    license_path: Optional[str] = None
    overrides_path: Optional[str] = None
    network_interface: Optional[str] = None
    proxy: ProxySpec = field(default_factory=ProxySpec)
    admin_console_port: int = 30000
    local_artifact_mirror_port: int = 50000
    is_airgap: bool = False
    enable_ha: bool = False
    cancel: threading.Event = field(default_factory=threading.Event)


@dataclass
class PhaseResult:
    """Outcome of one phase: success, or a failure carrying the cause."""
    phase: InstallPhase
    error: Optional[Exception] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class InstallState:
    """Tracks the progress of an installation."""
    phase: InstallPhase = InstallPhase.NOT_INSTALLED
    results: List[PhaseResult] = field(default_factory=list)

    def update_phase(self, phase: InstallPhase) -> None:
        """Update the installation phase."""
        self.phase = phase

    def record(self, result: PhaseResult) -> None:
        """Record the outcome of a phase."""
        self.results.append(result)


# A k0s ClusterConfig document (apiVersion/kind/metadata/spec) as plain data.
ClusterConfig = Dict[str, Any]
