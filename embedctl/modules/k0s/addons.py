"""Addon layer boundary.

Chart application itself is out of scope; this applier only provides the
hooks the installer calls: host preflight specs, the post-install outro, and
HA promotion against the running cluster.
"""

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from jinja2 import Environment, StrictUndefined, TemplateError
from jsonschema import ValidationError, validate
from kubernetes import client, config, utils
from kubernetes.client.rest import ApiException

from embedctl.config import Config
from . import release
from .errors import ConfigurationError, HAPromotionError
from .models import HostPreflightSpec, PreflightContext

logger = logging.getLogger("embedctl.k0s.addons")

CONTROL_PLANE_LABEL = 'node-role.kubernetes.io/control-plane'
HA_MIN_CONTROLLERS = 3
CLUSTER_CONFIGMAP_NAMESPACE = 'kube-system'

HOST_PREFLIGHT_SCHEMA = {
    "type": "object",
    "properties": {
        "kind": {"const": "HostPreflight"},
        "spec": {
            "type": "object",
            "properties": {
                "collectors": {"type": "array", "items": {"type": "object"}},
                "analyzers": {"type": "array", "items": {"type": "object"}},
            },
        },
    },
    "required": ["kind"],
}


def cluster_configmap_name() -> str:
    return f"{Config.BINARY_NAME}-config"


class AddonApplier:
    """Hooks into the addon layer used by install and join."""

    def __init__(self, kubeconfig: Optional[str] = None, no_prompt: bool = False):
        self.kubeconfig = kubeconfig or str(Config.KUBECONFIG_PATH)
        self.no_prompt = no_prompt
        self._api_client: Optional[client.ApiClient] = None

    def host_preflights(self, context: PreflightContext) -> HostPreflightSpec:
        """Render every HostPreflight template in the release with ``context``.

        Raises:
            ConfigurationError: If a template does not render or validate
        """
        spec = HostPreflightSpec()
        env = Environment(undefined=StrictUndefined)
        for path in release.host_preflight_templates():
            try:
                rendered = env.from_string(path.read_text(encoding='utf-8')).render(
                    **context.as_template_vars()
                )
                doc = yaml.safe_load(rendered) or {}
                validate(instance=doc, schema=HOST_PREFLIGHT_SCHEMA)
            except (OSError, TemplateError, yaml.YAMLError) as e:
                raise ConfigurationError(f"unable to read host preflights from {path}: {e}") from e
            except ValidationError as e:
                raise ConfigurationError(f"invalid host preflight {path}: {e.message}") from e
            body = doc.get('spec') or {}
            spec.extend(HostPreflightSpec(
                collectors=list(body.get('collectors') or []),
                analyzers=list(body.get('analyzers') or []),
            ))
            logger.debug(f"Loaded host preflights from {path}")
        return spec

    def api_client(self) -> client.ApiClient:
        if self._api_client is None:
            self._api_client = config.new_client_from_config(config_file=self.kubeconfig)
        return self._api_client

    def outro(self) -> None:
        """Apply the release addon manifests to the freshly installed cluster."""
        os.environ["KUBECONFIG"] = self.kubeconfig
        manifests = release.addon_manifests()
        if not manifests:
            logger.info("No addon manifests to apply")
            return
        api = self.api_client()
        for manifest in manifests:
            self._apply_manifest(api, manifest)
        logger.info(f"✅ Applied {len(manifests)} addon manifest(s)")

    @staticmethod
    def _apply_manifest(api: client.ApiClient, manifest: Path) -> None:
        logger.info(f"📦 Applying addon manifest {manifest.name}")
        try:
            utils.create_from_yaml(api, yaml_file=str(manifest))
        except utils.FailToCreateError as e:
            # objects from a previous run of the outro are left as they are
            unexpected = [exc for exc in e.api_exceptions if exc.status != 409]
            if unexpected:
                raise
            logger.debug(f"Objects from {manifest.name} already exist")

    def controller_count(self) -> int:
        """Number of control-plane nodes in the cluster."""
        core = client.CoreV1Api(self.api_client())
        nodes = core.list_node(label_selector=CONTROL_PLANE_LABEL).items
        return len(nodes)

    def can_enable_ha(self) -> bool:
        return self.controller_count() >= HA_MIN_CONTROLLERS

    def enable_ha(self) -> None:
        """Flag the cluster as highly available.

        Raises:
            HAPromotionError: If the cluster cannot be updated
        """
        core = client.CoreV1Api(self.api_client())
        body = {'data': {'ha': 'true'}}
        try:
            core.patch_namespaced_config_map(cluster_configmap_name(), CLUSTER_CONFIGMAP_NAMESPACE, body)
        except ApiException as e:
            if e.status != 404:
                raise HAPromotionError(f"unable to enable high availability: {e.reason}") from e
            cm = client.V1ConfigMap(
                metadata=client.V1ObjectMeta(name=cluster_configmap_name()),
                data=body['data'],
            )
            try:
                core.create_namespaced_config_map(CLUSTER_CONFIGMAP_NAMESPACE, cm)
            except ApiException as exc:
                raise HAPromotionError(f"unable to enable high availability: {exc.reason}") from exc
        logger.info("✅ High availability enabled")
