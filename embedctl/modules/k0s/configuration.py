"""k0s cluster configuration rendering.

The base ClusterConfig is produced from ``templates/k0s.yaml.j2`` and then every
addon image is pinned to the embedded image metadata for the running
architecture. ``list_images`` post-processes the image list reported by the
distribution so that it matches what the rendered config will actually pull.
"""

import copy
import logging
import os
import tempfile
from typing import Any, Dict, Iterable, List, Optional, Tuple

import yaml
from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateNotFound,
    TemplateSyntaxError,
    UndefinedError,
)

from embedctl.config import Config
from . import images as image_store
from .errors import ConfigurationError
from .models import ClusterConfig
from .utils import nested_get, run_command, write_yaml_file

logger = logging.getLogger("embedctl.k0s.configuration")

# Image k0s itself defaults to for the pod sandbox.
KUBE_PAUSE_CONTAINER_IMAGE = 'registry.k8s.io/pause'

# Manifest image name -> location of the image block under spec.images
IMAGE_OVERRIDES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ('coredns', ('coredns',)),
    ('calico-node', ('calico', 'node')),
    ('calico-cni', ('calico', 'cni')),
    ('calico-kube-controllers', ('calico', 'kubecontrollers')),
    ('metrics-server', ('metricsserver',)),
    ('kube-proxy', ('kubeproxy',)),
    ('pause', ('pause',)),
)

# Images managed by the addon layer, never listed by this component.
EXCLUDED_IMAGES: frozenset = frozenset({
    ('images', 'kuberouter', 'cni'),
    ('images', 'kuberouter', 'cniInstaller'),
    ('images', 'konnectivity'),
    ('network', 'nodeLocalLoadBalancing', 'envoyProxy', 'image'),
})


def get_template_path() -> str:
    """Get the absolute path to the templates directory."""
    return os.path.join(os.path.dirname(os.path.abspath(__file__)), 'templates')


def _image_uri(block: Any) -> Optional[str]:
    if not isinstance(block, dict) or not block.get('image'):
        return None
    version = block.get('version')
    return f"{block['image']}:{version}" if version else block['image']


def render_defaults(context: Optional[Dict[str, Any]] = None) -> ClusterConfig:
    """Render the default k0s ClusterConfig without image pinning.

    Args:
        context: Template variables overriding the defaults
            (cluster_name, pod_cidr, service_cidr)

    Raises:
        ConfigurationError: On a template or YAML error
        FileNotFoundError: If the template file is not found
    """
    variables = {
        'cluster_name': Config.BINARY_NAME,
        'pod_cidr': Config.POD_CIDR,
        'service_cidr': Config.SERVICE_CIDR,
        'default_pause_image': KUBE_PAUSE_CONTAINER_IMAGE,
    }
    variables.update(context or {})

    env = Environment(
        loader=FileSystemLoader(get_template_path()),
        trim_blocks=True,
        lstrip_blocks=True,
        undefined=StrictUndefined
    )
    try:
        rendered = env.get_template('k0s.yaml.j2').render(**variables)
    except TemplateNotFound as e:
        raise FileNotFoundError(f"Configuration template not found: {e}") from e
    except TemplateSyntaxError as e:
        raise ConfigurationError(f"Template syntax error: {e}") from e
    except UndefinedError as e:
        raise ConfigurationError(f"Missing required template variable: {e}") from e

    try:
        return yaml.safe_load(rendered)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Rendered configuration is not valid YAML: {e}") from e


def override_images(
    cfg: ClusterConfig,
    metadata: Optional[image_store.ImageMetadata] = None,
    arch: Optional[str] = None,
) -> ClusterConfig:
    """Pin every addon image in ``cfg`` to the embedded metadata.

    Returns a new config; ``cfg`` is left untouched.

    Raises:
        MissingImageError: If an image has no entry for the architecture
    """
    metadata = metadata or image_store.get_metadata()
    arch = arch or image_store.current_arch()

    result = copy.deepcopy(cfg)
    spec = result.setdefault('spec', {})
    if not isinstance(spec.get('images'), dict):
        spec['images'] = {}
    images = spec['images']

    for name, path in IMAGE_OVERRIDES:
        ref = metadata.resolve(name, arch)
        block = images
        for key in path:
            if not isinstance(block.get(key), dict):
                block[key] = {}
            block = block[key]
        block['image'] = ref.repo
        block['version'] = ref.tag
        logger.debug(f"Pinned {name} to {ref.uri()}")
    return result


def render_config(
    context: Optional[Dict[str, Any]] = None,
    metadata: Optional[image_store.ImageMetadata] = None,
    arch: Optional[str] = None,
) -> ClusterConfig:
    """Render the k0s ClusterConfig for this node.

    Example:
        ```python
        cfg = render_config({'pod_cidr': '10.10.0.0/16'})
        cfg['spec']['images']['pause']['image']
        ```

    Raises:
        ConfigurationError: On a template error
        MissingImageError: If an addon image cannot be resolved for ``arch``
    """
    return override_images(render_defaults(context), metadata, arch)


def excluded_image_uris(cfg: ClusterConfig) -> set:
    """URIs of the images in ``EXCLUDED_IMAGES`` as configured in ``cfg``."""
    spec = cfg.get('spec') or {}
    uris = set()
    for path in EXCLUDED_IMAGES:
        uri = _image_uri(nested_get(spec, *path))
        if uri:
            uris.add(uri)
    return uris


def enumerate_image_uris(config_path: str, binary: Optional[str] = None) -> List[str]:
    """Ask the k0s binary which images a config will pull."""
    output = run_command([
        str(binary or Config.K0S_BINARY_PATH), 'airgap', 'list-images', '--all', '--config', config_path,
    ])
    return [line.strip() for line in output.splitlines() if line.strip()]


def list_images(cfg: ClusterConfig, uris: Optional[Iterable[str]] = None, binary: Optional[str] = None) -> List[str]:
    """Filter and correct the image list reported for ``cfg``.

    The k0s enumeration always reports its own default pause image, never the
    configured one, so that entry is swapped for the configured pause image.
    Images in ``EXCLUDED_IMAGES`` are dropped; everything else passes through.

    Args:
        cfg: The rendered configuration
        uris: Image references as reported by the distribution. When omitted,
            ``cfg`` is written to a temporary file and enumerated with ``binary``.
        binary: k0s binary used for the enumeration

    Returns:
        list: Image references this installation will pull
    """
    if uris is None:
        with tempfile.NamedTemporaryFile('w', suffix='.yaml', encoding='utf-8') as f:
            yaml.safe_dump(cfg, f, default_flow_style=False)
            f.flush()
            uris = enumerate_image_uris(f.name, binary=binary)
    skipped = excluded_image_uris(cfg)
    pause = _image_uri(nested_get(cfg, 'spec', 'images', 'pause'))
    result = []
    for uri in uris:
        if uri in skipped:
            continue
        if KUBE_PAUSE_CONTAINER_IMAGE in uri and pause:
            result.append(pause)
        else:
            result.append(uri)
    return result


def write_config(cfg: ClusterConfig, path: Optional[str] = None) -> str:
    """Write ``cfg`` to the install marker path; refuses to overwrite.

    Raises:
        ConfigurationError: If the file already exists
    """
    path = str(path or Config.K0S_CONFIG_PATH)
    try:
        write_yaml_file(path, cfg, mode=0o600, exclusive=True)
    except FileExistsError as e:
        raise ConfigurationError(f"configuration file already exists: {path}") from e
    logger.info(f"📝 Wrote cluster configuration to {path}")
    return path
