import textwrap

import pytest

from embedctl.config import Config
from embedctl.modules.k0s import images


@pytest.fixture
def host(tmp_path, monkeypatch):
    """Point every host path at a scratch directory."""
    root = tmp_path / "host"
    paths = {
        'DATA_DIR': root / "var/lib/embedctl",
        'BIN_DIR': root / "var/lib/embedctl/bin",
        'EMBEDDED_BIN_DIR': root / "usr/share/embedctl/bin",
        'RELEASE_DIR': root / "usr/share/embedctl/release",
        'K0S_CONFIG_PATH': root / "etc/k0s/k0s.yaml",
        'K0S_BINARY_PATH': root / "usr/local/bin/k0s",
        'K0S_STATUS_SOCKET': root / "run/k0s/status.sock",
        'SYSTEMD_DIR': root / "etc/systemd/system",
        'KUBECONFIG_PATH': root / "var/lib/k0s/pki/admin.conf",
    }
    for name, value in paths.items():
        monkeypatch.setattr(Config, name, value)
    monkeypatch.setattr(Config, 'DISABLE_TELEMETRY', True)
    monkeypatch.setattr(Config, 'READY_POLL_INTERVAL', 0.01)
    monkeypatch.setattr(Config, 'READY_MAX_ATTEMPTS', 3)
    monkeypatch.setattr(Config, 'VERSION', '1.2.4')

    bindir = paths['EMBEDDED_BIN_DIR']
    bindir.mkdir(parents=True)
    for name in ('k0s', 'kubectl-preflight'):
        (bindir / name).write_text("#!/bin/sh\n")
    paths['SYSTEMD_DIR'].mkdir(parents=True)
    paths['RELEASE_DIR'].mkdir(parents=True)
    return root


@pytest.fixture
def write_release(host):
    """Write a file into the release directory."""
    def _write(name, content):
        path = Config.RELEASE_DIR / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content))
        return path
    return _write


@pytest.fixture
def metadata():
    return images.load(textwrap.dedent("""
        images:
          coredns:
            repo: example.com/coredns
            tag:
              amd64: 1.11.3-r0
              arm64: 1.11.3-r0-arm
          calico-node:
            repo: example.com/calico-node
            tag:
              amd64: 3.27.3-r0
          calico-cni:
            repo: example.com/calico-cni
            tag:
              amd64: 3.27.3-r0
          calico-kube-controllers:
            repo: example.com/calico-kube-controllers
            tag:
              amd64: 3.27.3-r0
          metrics-server:
            repo: example.com/metrics-server
            tag:
              amd64: 0.7.1-r0
          kube-proxy:
            repo: example.com/kube-proxy
            tag:
              amd64: 1.29.4-r0
          pause:
            repo: example.com/pause
            tag:
              amd64: 3.9-r0
    """))
