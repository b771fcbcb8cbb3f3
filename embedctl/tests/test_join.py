import os
from unittest.mock import MagicMock, patch

import pytest
import requests

from embedctl.config import Config
from embedctl.modules.k0s import images, join, service
from embedctl.modules.k0s.errors import (
    ConfigurationError,
    HAPromotionError,
    JoinTokenError,
    ProxyConfigError,
    VersionMismatchError,
)
from embedctl.modules.k0s.models import HostPreflightSpec, InstallOptions, InstallPhase, JoinCommand

PROXY_VARS = ("HTTP_PROXY", "HTTPS_PROXY", "NO_PROXY", "http_proxy", "https_proxy", "no_proxy")


def _payload(version="1.2.4", command="/usr/local/bin/k0s install worker", **extra):
    payload = {
        "version": version,
        "clusterID": "c0ffee",
        "k0sJoinCommand": command,
        "k0sToken": "k0s-token",
        "installationSpec": {
            "proxy": {"httpProxy": "http://proxy:3128", "noProxy": "10.0.0.0/8"},
            "metricsBaseURL": "https://metrics.example.com",
        },
    }
    payload.update(extra)
    return payload


def _response(status=200, payload=None, text=""):
    response = MagicMock()
    response.status_code = status
    response.text = text
    response.json.return_value = payload
    return response


@pytest.fixture
def clean_env(monkeypatch):
    for name in PROXY_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_k0s(host, monkeypatch):
    calls = []

    def run_command(cmd, env=None):
        calls.append((list(cmd), env))
        if cmd[-1] == "start":
            Config.K0S_STATUS_SOCKET.parent.mkdir(parents=True, exist_ok=True)
            Config.K0S_STATUS_SOCKET.touch()
        return ""

    monkeypatch.setattr(service, "run_command", run_command)
    monkeypatch.setattr(images, "current_arch", lambda: "amd64")
    monkeypatch.setattr(join, "validate_proxy", lambda proxy, interface=None: None)
    return calls


@pytest.fixture
def addons():
    applier = MagicMock()
    applier.host_preflights.return_value = HostPreflightSpec()
    return applier


def _coordinator(addons, **kwargs):
    return join.JoinCoordinator("10.0.0.10:30000", "token", InstallOptions(no_prompt=True, **kwargs), addons=addons)


def test_fetch_join_command():
    with patch.object(join.requests, "get", return_value=_response(payload=_payload())) as get:
        jcmd = join.fetch_join_command("10.0.0.10:30000", "token")
    get.assert_called_once_with(
        "https://10.0.0.10:30000/api/v1/embedded-cluster/join",
        headers={"Authorization": "token"},
        verify=False,
        timeout=Config.API_TIMEOUT,
    )
    assert jcmd.version == "1.2.4"
    assert jcmd.proxy.http_proxy == "http://proxy:3128"
    assert jcmd.cluster_id == "c0ffee"


def test_fetch_join_command_bad_status():
    with patch.object(join.requests, "get", return_value=_response(status=401, text="unauthorized")):
        with pytest.raises(JoinTokenError) as exc:
            join.fetch_join_command("10.0.0.10:30000", "token")
    assert "401" in str(exc.value)
    assert "unauthorized" in str(exc.value)


def test_fetch_join_command_network_error():
    with patch.object(join.requests, "get", side_effect=requests.ConnectionError("refused")):
        with pytest.raises(JoinTokenError):
            join.fetch_join_command("10.0.0.10:30000", "token")


@pytest.mark.parametrize("version", ["1.2.3", "1.2.4-rc1", "v1.2.4", ""])
def test_check_version_rejects_any_difference(version):
    with pytest.raises(VersionMismatchError):
        join.check_version(JoinCommand(version=version), "1.2.4")


def test_version_mismatch_aborts_before_anything_else(host, clean_env, addons):
    with patch.object(join.requests, "get", return_value=_response(payload=_payload(version="1.2.3"))), \
            patch.object(join, "validate_proxy") as validate_proxy, \
            patch.object(service, "run_command") as run_command:
        with pytest.raises(VersionMismatchError) as exc:
            _coordinator(addons).join()

    assert exc.value.cluster_version == "1.2.3"
    assert exc.value.binary_version == "1.2.4"
    validate_proxy.assert_not_called()
    run_command.assert_not_called()
    assert not any(name in os.environ for name in PROXY_VARS)
    assert not Config.BIN_DIR.exists()
    assert not Config.join_token_path().exists()


def test_proxy_validation_failure_aborts_join(host, addons, monkeypatch):
    monkeypatch.setattr(join, "validate_proxy", MagicMock(side_effect=ProxyConfigError("10.0.0.0/8", "192.168.1.5")))
    with patch.object(join.requests, "get", return_value=_response(payload=_payload())), \
            patch.object(service, "run_command") as run_command:
        with pytest.raises(ProxyConfigError):
            _coordinator(addons).join()
    run_command.assert_not_called()


def test_admin_port_from_url():
    assert join.admin_port_from_url("10.0.0.10:30000") == 30000
    with pytest.raises(ConfigurationError):
        join.admin_port_from_url("10.0.0.10")
    with pytest.raises(ConfigurationError):
        join.admin_port_from_url("10.0.0.10:http")


def test_local_artifact_mirror_port_default():
    jcmd = JoinCommand.model_validate(_payload())
    assert join.local_artifact_mirror_port(jcmd) == 50000
    jcmd = JoinCommand.model_validate(_payload(installationSpec={"localArtifactMirror": {"port": 50001}}))
    assert join.local_artifact_mirror_port(jcmd) == 50001


def test_options_carry_join_settings():
    jcmd = JoinCommand.model_validate(_payload())
    options = join.options_for_join("10.0.0.10:30001", jcmd, InstallOptions())
    assert options.admin_console_port == 30001
    assert options.local_artifact_mirror_port == 50000
    assert options.proxy.no_proxy == "10.0.0.0/8"


def test_worker_join(fake_k0s, clean_env, addons):
    with patch.object(join.requests, "get", return_value=_response(payload=_payload())), \
            patch.object(join.JoinSequence, "report_started"), \
            patch.object(join.JoinSequence, "report_finished"):
        state = _coordinator(addons).join()

    assert state.phase == InstallPhase.INSTALLED
    assert InstallPhase.CONFIG_RENDERING not in [r.phase for r in state.results]
    assert not Config.K0S_CONFIG_PATH.exists()
    install_cmd, env = fake_k0s[0]
    assert install_cmd[1:3] == ["install", "worker"]
    assert "--token-file" in install_cmd
    assert env["HTTP_PROXY"] == "http://proxy:3128"
    assert Config.join_token_path().read_text() == "k0s-token"
    assert os.readlink(Config.service_alias_path()) == str(Config.SYSTEMD_DIR / Config.K0S_WORKER_UNIT)
    assert not any(name in os.environ for name in PROXY_VARS)
    addons.outro.assert_not_called()


def test_controller_join_applies_token_overrides(fake_k0s, clean_env, addons):
    payload = _payload(
        command="/usr/local/bin/k0s install controller",
        k0sUnsupportedOverrides="config:\n  metadata:\n    name: vendor\n",
        endUserK0sConfigOverrides="metadata:\n  name: mine\n",
    )
    with patch.object(join.requests, "get", return_value=_response(payload=payload)), \
            patch.object(join.JoinSequence, "report_started"), \
            patch.object(join.JoinSequence, "report_finished"):
        _coordinator(addons).join()

    cfg_text = Config.K0S_CONFIG_PATH.read_text()
    assert "name: mine" in cfg_text
    install_cmd, _ = fake_k0s[0]
    assert install_cmd[-2:] == ["-c", str(Config.K0S_CONFIG_PATH)]
    addons.enable_ha.assert_not_called()


def test_ha_promotion_after_controller_join(fake_k0s, clean_env, addons):
    addons.can_enable_ha.return_value = True
    payload = _payload(command="/usr/local/bin/k0s install controller")
    with patch.object(join.requests, "get", return_value=_response(payload=payload)), \
            patch.object(join.JoinSequence, "report_started"), \
            patch.object(join.JoinSequence, "report_finished"):
        _coordinator(addons, enable_ha=True).join()
    addons.enable_ha.assert_called_once()


def test_ha_skipped_with_too_few_controllers(addons):
    addons.can_enable_ha.return_value = False
    coordinator = _coordinator(addons, enable_ha=True)
    assert coordinator.maybe_enable_ha() is False
    addons.enable_ha.assert_not_called()


def test_ha_prompt_declined(addons):
    addons.can_enable_ha.return_value = True
    coordinator = join.JoinCoordinator("10.0.0.10:30000", "token", InstallOptions(enable_ha=True), addons=addons)
    with patch.object(join.typer, "confirm", return_value=False) as confirm:
        assert coordinator.maybe_enable_ha() is False
    confirm.assert_called_once()
    addons.enable_ha.assert_not_called()


def test_ha_failure_is_reported(addons):
    addons.can_enable_ha.return_value = True
    addons.enable_ha.side_effect = HAPromotionError("unable to enable high availability: Forbidden")
    with pytest.raises(HAPromotionError):
        _coordinator(addons, enable_ha=True).maybe_enable_ha()


def test_join_telemetry_uses_token_endpoint():
    jcmd = JoinCommand.model_validate(_payload())
    sequence = join.JoinSequence(jcmd, InstallOptions(), addons=MagicMock())
    assert sequence.reporter.base_url == "https://metrics.example.com"
    assert sequence.reporter.cluster_id == "c0ffee"
