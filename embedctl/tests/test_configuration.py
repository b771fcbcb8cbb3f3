import os
import stat

import pytest
import yaml

from embedctl.config import Config
from embedctl.modules.k0s import configuration
from embedctl.modules.k0s.errors import ConfigurationError, MissingImageError


def test_render_pins_addon_images(metadata):
    cfg = configuration.render_config(metadata=metadata, arch="amd64")
    images = cfg["spec"]["images"]
    assert images["coredns"] == {"image": "example.com/coredns", "version": "1.11.3-r0"}
    assert images["calico"]["node"]["image"] == "example.com/calico-node"
    assert images["pause"] == {"image": "example.com/pause", "version": "3.9-r0"}
    # not managed here
    assert images["kuberouter"]["cni"]["image"] == "quay.io/k0sproject/kube-router"


def test_render_uses_template_context(metadata):
    cfg = configuration.render_config({"pod_cidr": "10.10.0.0/16"}, metadata=metadata, arch="amd64")
    assert cfg["spec"]["network"]["podCIDR"] == "10.10.0.0/16"
    assert cfg["spec"]["network"]["serviceCIDR"] == Config.SERVICE_CIDR


def test_render_fails_for_unknown_architecture(metadata):
    with pytest.raises(MissingImageError):
        configuration.render_config(metadata=metadata, arch="s390x")


def test_override_images_creates_images_block(metadata):
    cfg = {"spec": {"images": None}}
    result = configuration.override_images(cfg, metadata, "amd64")
    assert result["spec"]["images"]["kubeproxy"]["version"] == "1.29.4-r0"
    assert cfg == {"spec": {"images": None}}


def test_list_images_substitutes_pause_and_skips_excluded(metadata):
    cfg = configuration.render_config(metadata=metadata, arch="amd64")
    reported = [
        "example.com/coredns:1.11.3-r0",
        "registry.k8s.io/pause:3.9",
        "quay.io/k0sproject/kube-router:v2.1.0-iptables1.8.9-0",
        "quay.io/k0sproject/cni-node:1.3.0-k0s.0",
        "quay.io/k0sproject/apiserver-network-proxy-agent:v0.28.4",
        "quay.io/k0sproject/envoy-distroless:v1.29.4",
        "example.com/kube-proxy:1.29.4-r0",
    ]
    assert configuration.list_images(cfg, reported) == [
        "example.com/coredns:1.11.3-r0",
        "example.com/pause:3.9-r0",
        "example.com/kube-proxy:1.29.4-r0",
    ]


def test_excluded_image_uris(metadata):
    cfg = configuration.render_config(metadata=metadata, arch="amd64")
    assert configuration.excluded_image_uris(cfg) == {
        "quay.io/k0sproject/kube-router:v2.1.0-iptables1.8.9-0",
        "quay.io/k0sproject/cni-node:1.3.0-k0s.0",
        "quay.io/k0sproject/apiserver-network-proxy-agent:v0.28.4",
        "quay.io/k0sproject/envoy-distroless:v1.29.4",
    }


def test_enumerate_image_uris(monkeypatch):
    calls = []

    def fake_run(cmd, env=None):
        calls.append(cmd)
        return "a:1\n\nb:2\n"

    monkeypatch.setattr(configuration, "run_command", fake_run)
    assert configuration.enumerate_image_uris("/tmp/k0s.yaml", binary="/bin/k0s") == ["a:1", "b:2"]
    assert calls[0] == ["/bin/k0s", "airgap", "list-images", "--all", "--config", "/tmp/k0s.yaml"]


def test_list_images_enumerates_rendered_config(metadata, monkeypatch):
    cfg = configuration.render_config(metadata=metadata, arch="amd64")
    seen = {}

    def fake_run(cmd, env=None):
        with open(cmd[-1], encoding="utf-8") as f:
            seen["config"] = yaml.safe_load(f)
        seen["binary"] = cmd[0]
        return "registry.k8s.io/pause:3.9\n"

    monkeypatch.setattr(configuration, "run_command", fake_run)
    assert configuration.list_images(cfg, binary="/bin/k0s") == ["example.com/pause:3.9-r0"]
    assert seen["config"] == cfg
    assert seen["binary"] == "/bin/k0s"


def test_write_config_refuses_to_overwrite(host, metadata):
    cfg = configuration.render_config(metadata=metadata, arch="amd64")
    path = configuration.write_config(cfg)
    assert yaml.safe_load(open(path))["kind"] == "ClusterConfig"
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
    with pytest.raises(ConfigurationError):
        configuration.write_config(cfg)
