import os
from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client.rest import ApiException

from embedctl.modules.k0s import addons as addons_module
from embedctl.modules.k0s.addons import AddonApplier
from embedctl.modules.k0s.errors import ConfigurationError, HAPromotionError
from embedctl.modules.k0s.models import PreflightContext, ProxySpec


def test_host_preflights_are_rendered(write_release):
    write_release("host-preflights/host.yaml", """
        apiVersion: troubleshoot.sh/v1beta2
        kind: HostPreflight
        spec:
          collectors:
            - tcpPortStatus:
                collectorName: Admin Console
                port: {{ admin_console_port }}
          analyzers:
            - cpu:
                checkName: CPU
    """)
    spec = AddonApplier().host_preflights(PreflightContext(admin_console_port=30001, proxy=ProxySpec()))
    assert spec.collectors[0]["tcpPortStatus"]["port"] == 30001
    assert spec.analyzers[0]["cpu"]["checkName"] == "CPU"


def test_host_preflights_unknown_variable(write_release):
    write_release("host-preflights/host.yaml", "kind: HostPreflight\nspec: {{ nope }}\n")
    with pytest.raises(ConfigurationError):
        AddonApplier().host_preflights(PreflightContext())


def test_host_preflights_wrong_kind(write_release):
    write_release("host-preflights/host.yaml", "kind: Preflight\n")
    with pytest.raises(ConfigurationError):
        AddonApplier().host_preflights(PreflightContext())


def test_no_host_preflights(host):
    assert AddonApplier().host_preflights(PreflightContext()).is_empty()


def test_outro_sets_kubeconfig_and_applies_manifests(write_release, monkeypatch):
    monkeypatch.delenv("KUBECONFIG", raising=False)
    manifest = write_release("addons/namespace.yaml", "apiVersion: v1\nkind: Namespace\nmetadata:\n  name: app\n")
    applier = AddonApplier(kubeconfig="/tmp/admin.conf")
    applier._api_client = MagicMock()
    with patch.object(addons_module.utils, "create_from_yaml") as create:
        applier.outro()
    assert os.environ["KUBECONFIG"] == "/tmp/admin.conf"
    create.assert_called_once_with(applier._api_client, yaml_file=str(manifest))


def _nodes(count):
    return MagicMock(items=[MagicMock() for _ in range(count)])


def test_can_enable_ha():
    applier = AddonApplier()
    applier._api_client = MagicMock()
    with patch.object(addons_module.client, "CoreV1Api") as core:
        core.return_value.list_node.return_value = _nodes(2)
        assert not applier.can_enable_ha()
        core.return_value.list_node.return_value = _nodes(3)
        assert applier.can_enable_ha()
    core.return_value.list_node.assert_called_with(label_selector=addons_module.CONTROL_PLANE_LABEL)


def test_enable_ha_creates_missing_configmap():
    applier = AddonApplier()
    applier._api_client = MagicMock()
    with patch.object(addons_module.client, "CoreV1Api") as core:
        core.return_value.patch_namespaced_config_map.side_effect = ApiException(status=404, reason="Not Found")
        applier.enable_ha()
    core.return_value.create_namespaced_config_map.assert_called_once()


def test_enable_ha_failure():
    applier = AddonApplier()
    applier._api_client = MagicMock()
    with patch.object(addons_module.client, "CoreV1Api") as core:
        core.return_value.patch_namespaced_config_map.side_effect = ApiException(status=403, reason="Forbidden")
        with pytest.raises(HAPromotionError, match="Forbidden"):
            applier.enable_ha()
