"""Release data shipped alongside the binary.

Everything lives under ``Config.RELEASE_DIR`` and every piece is optional:

- ``channelrelease.yaml``          application slug and channel the binary was built for
- ``embedded-cluster-config.yaml`` vendor supplied k0s overrides
- ``host-preflights/*.yaml``       HostPreflight templates
- ``addons/*.yaml``                manifests applied once the node is ready
"""

import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from embedctl.config import Config
from .errors import ConfigurationError
from .overrides import EmbeddedClusterConfig

logger = logging.getLogger("embedctl.k0s.release")

CHANNEL_RELEASE_FILE = 'channelrelease.yaml'
EMBEDDED_CONFIG_FILE = 'embedded-cluster-config.yaml'
HOST_PREFLIGHTS_DIR = 'host-preflights'
ADDONS_DIR = 'addons'


class ChannelRelease(BaseModel):
    """Application and channel the binary was released for."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    app_slug: str = Field(alias="appSlug")
    channel_id: str = Field(alias="channelID")
    channel_slug: str = Field(default="", alias="channelSlug")
    version_label: str = Field(default="", alias="versionLabel")


def release_dir() -> Path:
    return Path(Config.RELEASE_DIR)


def _load(name: str) -> Optional[dict]:
    path = release_dir() / name
    if not path.exists():
        return None
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"failed to read release file {path}: {e}") from e


def get_channel_release() -> Optional[ChannelRelease]:
    """The channel release, or None when the binary carries no application."""
    data = _load(CHANNEL_RELEASE_FILE)
    if data is None:
        return None
    try:
        return ChannelRelease.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"failed to get release from binary: {e}") from e


def get_embedded_cluster_config() -> Optional[EmbeddedClusterConfig]:
    """Vendor supplied overrides, or None."""
    data = _load(EMBEDDED_CONFIG_FILE)
    if data is None:
        return None
    try:
        return EmbeddedClusterConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"unable to get embedded cluster config: {e}") from e


def _yaml_files(subdir: str) -> List[Path]:
    path = release_dir() / subdir
    if not path.is_dir():
        return []
    return sorted(p for p in path.iterdir() if p.suffix in ('.yaml', '.yml'))


def host_preflight_templates() -> List[Path]:
    return _yaml_files(HOST_PREFLIGHTS_DIR)


def addon_manifests() -> List[Path]:
    return _yaml_files(ADDONS_DIR)
