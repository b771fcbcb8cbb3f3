"""Embedded image metadata.

The manifest in ``static/metadata.yaml`` maps a logical image name to a
repository and a tag per architecture. It is parsed exactly once per process
and exposed read-only; a malformed manifest is a fatal startup error.
"""

import functools
import logging
import os
import platform
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, NamedTuple, Optional

import yaml
from jsonschema import ValidationError, validate

from .errors import ImageMetadataError, MissingImageError

logger = logging.getLogger("embedctl.k0s.images")

METADATA_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'static', 'metadata.yaml')

METADATA_SCHEMA = {
    "type": "object",
    "properties": {
        "images": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "properties": {
                    "repo": {"type": "string", "minLength": 1},
                    "tag": {
                        "type": "object",
                        "additionalProperties": {"type": "string", "minLength": 1},
                    },
                },
                "required": ["repo", "tag"],
            },
        },
    },
    "required": ["images"],
}

# platform.machine() values mapped onto the architecture keys of the manifest
_ARCH_ALIASES = {
    'x86_64': 'amd64',
    'amd64': 'amd64',
    'aarch64': 'arm64',
    'arm64': 'arm64',
}


class ImageRef(NamedTuple):
    """A resolved image: repository plus the tag for one architecture."""
    repo: str
    tag: str

    def uri(self) -> str:
        separator = '@' if self.tag.startswith('sha256:') else ':'
        return f"{self.repo}{separator}{self.tag}"


class ImageMetadata:
    """Read-only view over the parsed manifest."""

    def __init__(self, images: Dict[str, Dict[str, Any]]):
        self._images: Mapping[str, Mapping[str, Any]] = MappingProxyType({
            name: MappingProxyType({
                'repo': entry['repo'],
                'tag': MappingProxyType(dict(entry['tag'])),
            })
            for name, entry in images.items()
        })

    def __contains__(self, name: object) -> bool:
        return name in self._images

    def __iter__(self) -> Iterator[str]:
        return iter(self._images)

    def __len__(self) -> int:
        return len(self._images)

    def resolve(self, name: str, arch: Optional[str] = None) -> ImageRef:
        """Return the repository and tag of ``name`` for ``arch``.

        Args:
            name: Logical image name, e.g. ``coredns``
            arch: Architecture key; defaults to the running architecture

        Raises:
            MissingImageError: If the name or the architecture key is absent
        """
        arch = arch or current_arch()
        entry = self._images.get(name)
        if entry is None:
            raise MissingImageError(name)
        tag = entry['tag'].get(arch)
        if not tag:
            raise MissingImageError(name, arch)
        return ImageRef(repo=entry['repo'], tag=tag)


def current_arch() -> str:
    """Architecture of this host using the manifest's naming (amd64, arm64)."""
    machine = platform.machine().lower()
    return _ARCH_ALIASES.get(machine, machine)


def load(raw: str) -> ImageMetadata:
    """Parse and validate a manifest document.

    Raises:
        ImageMetadataError: If the document is not valid YAML or does not match the schema
    """
    try:
        data = yaml.safe_load(raw)
        validate(instance=data, schema=METADATA_SCHEMA)
    except yaml.YAMLError as e:
        raise ImageMetadataError(f"unable to unmarshal metadata: {e}") from e
    except ValidationError as e:
        raise ImageMetadataError(f"invalid image metadata: {e.message}") from e
    return ImageMetadata(data['images'])


@functools.lru_cache(maxsize=None)
def get_metadata() -> ImageMetadata:
    """Load the embedded manifest once; later calls return the same instance."""
    try:
        with open(METADATA_PATH, 'r', encoding='utf-8') as f:
            raw = f.read()
    except OSError as e:
        raise ImageMetadataError(f"unable to read embedded image metadata: {e}") from e
    metadata = load(raw)
    logger.debug(f"Loaded metadata for {len(metadata)} images from {METADATA_PATH}")
    return metadata
