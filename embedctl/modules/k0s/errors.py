"""Exceptions raised by the k0s bootstrap engine."""

from typing import List, Optional, Sequence


class EmbedctlError(Exception):
    """Base class for every error the CLI knows how to report."""


class NothingElseToAdd(EmbedctlError):
    """Raised when the details were already printed; the CLI adds no error line."""


class ImageMetadataError(EmbedctlError):
    """The embedded image manifest is malformed. Fatal at startup."""


class MissingImageError(EmbedctlError):
    """An image name or architecture is absent from the manifest."""

    def __init__(self, name: str, arch: Optional[str] = None):
        self.name = name
        self.arch = arch
        if arch is None:
            msg = f"image {name!r} not found in image metadata"
        else:
            msg = f"image {name!r} has no tag for architecture {arch!r}"
        super().__init__(msg)


class ConfigurationError(EmbedctlError):
    """Raised when there is an error generating the cluster configuration."""


class PatchError(EmbedctlError):
    """An override fragment could not be applied."""

    def __init__(self, source: str, cause: Exception):
        self.source = source
        self.cause = cause
        super().__init__(f"unable to apply {source} overrides: {cause}")


class PreflightRunError(EmbedctlError):
    """Host preflights could not be executed."""


class PreflightsFailed(NothingElseToAdd):
    """At least one host preflight failed; the results table was already printed."""

    def __init__(self):
        super().__init__("host preflights have failures")


class UserAbort(EmbedctlError):
    """The operator declined an interactive confirmation."""

    def __init__(self, message: str = "user aborted"):
        super().__init__(message)


class ResolutionError(EmbedctlError):
    """The local node address could not be determined."""


class ProxyConfigError(EmbedctlError):
    """The no-proxy list does not exempt the node's own address."""

    def __init__(self, no_proxy: str, local_ip: str):
        self.no_proxy = no_proxy
        self.local_ip = local_ip
        super().__init__(f"no-proxy config {no_proxy!r} does not allow access to local IP {local_ip!r}")


class VersionMismatchError(EmbedctlError):
    """The join token was issued by a cluster running a different version."""

    def __init__(self, binary_version: str, cluster_version: str):
        self.binary_version = binary_version
        self.cluster_version = cluster_version
        super().__init__(
            f"embedded cluster version mismatch - this binary is version {binary_version!r}, "
            f"but the cluster is running version {cluster_version!r}"
        )


class AlreadyInstalled(NothingElseToAdd):
    """The install marker exists on this host."""

    def __init__(self, marker: str):
        self.marker = marker
        super().__init__(f"an installation has been detected on this machine ({marker})")


class LicenseMismatchError(EmbedctlError):
    """The license does not match the release embedded in the binary."""


class CommandError(EmbedctlError):
    """An external process exited non-zero or could not be spawned."""

    def __init__(self, cmd: Sequence[str], returncode: Optional[int], stdout: str = "", stderr: str = ""):
        self.cmd: List[str] = list(cmd)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        if returncode is None:
            msg = f"unable to run {self.cmd[0]}"
        else:
            msg = f"command {' '.join(self.cmd)} exited with status {returncode}"
        super().__init__(msg)


class ReadinessTimeout(EmbedctlError):
    """The awaited artifact did not appear within the allowed number of polls."""

    def __init__(self, artifact: str, attempts: int, interval: float):
        self.artifact = artifact
        super().__init__(
            f"timeout waiting for {artifact} after {attempts} attempts every {interval:g}s"
        )


class Cancelled(EmbedctlError):
    """The caller cancelled the operation while it was waiting."""


class JoinTokenError(EmbedctlError):
    """The join command could not be fetched or decoded."""


class HAPromotionError(EmbedctlError):
    """HA promotion failed after a completed join."""


class PhaseError(EmbedctlError):
    """A phase of the install or join sequence failed."""

    def __init__(self, phase: str, cause: Exception):
        self.phase = phase
        self.cause = cause
        super().__init__(f"{phase} phase failed: {cause}")
