"""Configuration management for the embedctl application."""
import os
from pathlib import Path
from dotenv import load_dotenv

from embedctl import __version__

# Load environment variables from .env file if it exists
load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration with sensible defaults."""

    # Identity
    BINARY_NAME: str = os.getenv("EMBEDCTL_BINARY_NAME", "embedctl")
    VERSION: str = os.getenv("EMBEDCTL_VERSION", __version__)

    # Host paths
    DATA_DIR: Path = Path(os.getenv("EMBEDCTL_DATA_DIR", "/var/lib/embedctl"))
    BIN_DIR: Path = Path(os.getenv("EMBEDCTL_BIN_DIR", "/var/lib/embedctl/bin"))
    EMBEDDED_BIN_DIR: Path = Path(os.getenv("EMBEDCTL_EMBEDDED_BIN_DIR", "/usr/share/embedctl/bin"))
    RELEASE_DIR: Path = Path(os.getenv("EMBEDCTL_RELEASE_DIR", "/usr/share/embedctl/release"))

    # k0s paths; the config file doubles as the "already installed" marker
    K0S_CONFIG_PATH: Path = Path(os.getenv("K0S_CONFIG_PATH", "/etc/k0s/k0s.yaml"))
    K0S_BINARY_PATH: Path = Path(os.getenv("K0S_BINARY_PATH", "/usr/local/bin/k0s"))
    K0S_STATUS_SOCKET: Path = Path(os.getenv("K0S_STATUS_SOCKET", "/run/k0s/status.sock"))
    K0S_SERVICE_UNIT: str = os.getenv("K0S_SERVICE_UNIT", "k0scontroller.service")
    K0S_WORKER_UNIT: str = os.getenv("K0S_WORKER_UNIT", "k0sworker.service")
    SYSTEMD_DIR: Path = Path(os.getenv("SYSTEMD_DIR", "/etc/systemd/system"))
    KUBECONFIG_PATH: Path = Path(os.getenv("EMBEDCTL_KUBECONFIG", "/var/lib/k0s/pki/admin.conf"))

    # Network defaults
    POD_CIDR: str = os.getenv("EMBEDCTL_POD_CIDR", "10.244.0.0/16")
    SERVICE_CIDR: str = os.getenv("EMBEDCTL_SERVICE_CIDR", "10.96.0.0/12")
    DEFAULT_ADMIN_CONSOLE_PORT: int = int(os.getenv("EMBEDCTL_ADMIN_CONSOLE_PORT", "30000"))
    DEFAULT_LOCAL_ARTIFACT_MIRROR_PORT: int = int(os.getenv("EMBEDCTL_LOCAL_ARTIFACT_MIRROR_PORT", "50000"))
    PROXY_REGISTRY_ADDRESS: str = os.getenv("EMBEDCTL_PROXY_REGISTRY_ADDRESS", "proxy.replicated.com")

    # Telemetry
    METRICS_BASE_URL: str = os.getenv("EMBEDCTL_METRICS_BASE_URL", "https://replicated.app")
    DISABLE_TELEMETRY: bool = _flag("DISABLE_TELEMETRY")

    # Timeouts (in seconds)
    API_TIMEOUT: int = int(os.getenv("API_TIMEOUT", "30"))

    # Readiness polling
    READY_POLL_INTERVAL: float = float(os.getenv("EMBEDCTL_READY_POLL_INTERVAL", "2"))
    READY_MAX_ATTEMPTS: int = int(os.getenv("EMBEDCTL_READY_MAX_ATTEMPTS", "30"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    LOG_FILE: str = os.getenv("EMBEDCTL_LOG_FILE", "")
    LOG_MAX_SIZE_MB: int = int(os.getenv("EMBEDCTL_LOG_MAX_SIZE_MB", "100"))
    LOG_BACKUP_COUNT: int = int(os.getenv("EMBEDCTL_LOG_BACKUP_COUNT", "5"))

    @classmethod
    def service_alias_path(cls) -> Path:
        """Path of the systemd unit alias named after the binary."""
        return cls.SYSTEMD_DIR / f"{cls.BINARY_NAME}.service"

    @classmethod
    def join_token_path(cls) -> Path:
        """Where the k0s join token is written before a join install."""
        return cls.DATA_DIR / "k0s-join-token"

    @classmethod
    def validate(cls) -> None:
        """Validate configuration values that cannot be checked by type alone."""
        if cls.READY_MAX_ATTEMPTS < 1:
            raise ValueError("EMBEDCTL_READY_MAX_ATTEMPTS must be at least 1")
        if cls.READY_POLL_INTERVAL <= 0:
            raise ValueError("EMBEDCTL_READY_POLL_INTERVAL must be positive")
