"""Unsupported overrides for the k0s configuration.

Overrides are raw YAML fragments shaped like a (partial) ClusterConfig,
optionally wrapped in a top-level ``config`` key. They are merged onto the
rendered configuration with JSON merge-patch semantics: mappings merge
recursively, any other value replaces, and ``null`` removes the key.

Two sources exist and are always applied in this order:

1. ``embedded`` - shipped with the release (``embedded-cluster-config.yaml``)
2. ``user`` - the ``--overrides`` file supplied by the operator

so the operator wins on conflicts.
"""

import copy
import logging
from typing import Any, Dict, Optional, Sequence, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import PatchError
from .models import ClusterConfig

logger = logging.getLogger("embedctl.k0s.overrides")

EMBEDDED = 'embedded'
USER = 'user'

# (source, raw fragment)
Fragment = Tuple[str, Optional[str]]


class UnsupportedOverrides(BaseModel):
    k0s: str = ""


class EmbeddedClusterConfigSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    unsupported_overrides: UnsupportedOverrides = Field(
        default_factory=UnsupportedOverrides, alias="unsupportedOverrides"
    )


class EmbeddedClusterConfig(BaseModel):
    """The ``kind: Config`` document carrying k0s overrides."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    api_version: str = Field(default="", alias="apiVersion")
    kind: str = ""
    spec: EmbeddedClusterConfigSpec = Field(default_factory=EmbeddedClusterConfigSpec)

    @property
    def k0s_overrides(self) -> str:
        return self.spec.unsupported_overrides.k0s


def merge_patch(base: Any, patch: Any) -> Any:
    """Apply an RFC 7386 merge patch and return the result.

    Args:
        base: Document being patched
        patch: Patch document

    Returns:
        The merged document; neither argument is modified
    """
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = copy.deepcopy(base) if isinstance(base, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = merge_patch(result.get(key), value)
    return result


def parse_fragment(raw: str) -> Dict[str, Any]:
    """Decode a raw fragment into a mapping, unwrapping a ``config`` key."""
    data = yaml.safe_load(raw)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"override must be a mapping, got {type(data).__name__}")
    if set(data) == {'config'}:
        data = data['config'] or {}
        if not isinstance(data, dict):
            raise ValueError("override 'config' must be a mapping")
    return data


def patch_config(cfg: ClusterConfig, fragments: Sequence[Fragment]) -> ClusterConfig:
    """Apply ``fragments`` to ``cfg`` strictly in order.

    Empty or missing fragments are skipped. The first fragment that fails
    aborts the whole chain, and ``cfg`` itself is never modified.

    Raises:
        PatchError: Naming the source of the failing fragment
    """
    result = copy.deepcopy(cfg)
    for source, raw in fragments:
        if not raw or not raw.strip():
            logger.debug(f"No {source} overrides to apply")
            continue
        try:
            patch = parse_fragment(raw)
        except (yaml.YAMLError, ValueError) as e:
            raise PatchError(source, e) from e
        result = merge_patch(result, patch)
        logger.info(f"🔧 Applied {source} overrides")
    return result


def parse_end_user_config(path: str) -> EmbeddedClusterConfig:
    """Load the operator's ``--overrides`` file.

    Raises:
        PatchError: If the file cannot be read or decoded
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        return EmbeddedClusterConfig.model_validate(data)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        raise PatchError(USER, ValueError(f"unable to process overrides file {path}: {e}")) from e


def fragments_for_install(embedded: Optional[EmbeddedClusterConfig], overrides_path: Optional[str]) -> list:
    """Ordered fragments for a local install: embedded first, user second."""
    fragments = []
    if embedded is not None:
        fragments.append((EMBEDDED, embedded.k0s_overrides))
    if overrides_path:
        fragments.append((USER, parse_end_user_config(overrides_path).k0s_overrides))
    return fragments
