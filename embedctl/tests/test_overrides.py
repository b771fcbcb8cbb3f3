import pytest

from embedctl.modules.k0s import overrides
from embedctl.modules.k0s.errors import PatchError


def test_user_overrides_win():
    cfg = {"spec": {"network": {"provider": "calico"}}}
    result = overrides.patch_config(cfg, [
        (overrides.EMBEDDED, "A: 1"),
        (overrides.USER, "A: 2\nB: 3"),
    ])
    assert result["A"] == 2
    assert result["B"] == 3
    assert result["spec"]["network"]["provider"] == "calico"


def test_fragments_apply_in_order():
    cfg = {}
    result = overrides.patch_config(cfg, [(overrides.USER, "A: 2"), (overrides.EMBEDDED, "A: 1")])
    assert result["A"] == 1


def test_config_wrapper_and_deep_merge():
    cfg = {"spec": {"api": {"port": 6443, "k0sApiPort": 9443}}}
    fragment = "config:\n  spec:\n    api:\n      port: 7443\n"
    result = overrides.patch_config(cfg, [(overrides.EMBEDDED, fragment)])
    assert result["spec"]["api"] == {"port": 7443, "k0sApiPort": 9443}


def test_null_removes_key():
    result = overrides.patch_config({"spec": {"telemetry": {"enabled": False}}}, [
        (overrides.USER, "spec:\n  telemetry: null\n"),
    ])
    assert result == {"spec": {}}


def test_empty_fragments_are_noop():
    cfg = {"a": 1}
    assert overrides.patch_config(cfg, [(overrides.EMBEDDED, ""), (overrides.USER, None)]) == cfg
    assert overrides.patch_config(cfg, []) == cfg


def test_failed_fragment_aborts_without_partial_result():
    cfg = {"a": 1}
    with pytest.raises(PatchError) as exc:
        overrides.patch_config(cfg, [(overrides.EMBEDDED, "a: 2"), (overrides.USER, "- not a mapping")])
    assert exc.value.source == overrides.USER
    assert cfg == {"a": 1}


def test_parse_end_user_config(tmp_path):
    path = tmp_path / "overrides.yaml"
    path.write_text(
        "apiVersion: embeddedcluster.replicated.com/v1beta1\n"
        "kind: Config\n"
        "spec:\n"
        "  unsupportedOverrides:\n"
        "    k0s: |\n"
        "      config:\n"
        "        metadata:\n"
        "          name: foo\n"
    )
    fragments = overrides.fragments_for_install(None, str(path))
    assert fragments[0][0] == overrides.USER
    assert overrides.patch_config({}, fragments) == {"metadata": {"name": "foo"}}


def test_parse_end_user_config_missing_file(tmp_path):
    with pytest.raises(PatchError) as exc:
        overrides.parse_end_user_config(str(tmp_path / "missing.yaml"))
    assert exc.value.source == overrides.USER


def test_embedded_before_user(tmp_path):
    path = tmp_path / "overrides.yaml"
    path.write_text("spec:\n  unsupportedOverrides:\n    k0s: 'A: 2'\n")
    embedded = overrides.EmbeddedClusterConfig.model_validate(
        {"spec": {"unsupportedOverrides": {"k0s": "A: 1"}}}
    )
    fragments = overrides.fragments_for_install(embedded, str(path))
    assert [source for source, _ in fragments] == [overrides.EMBEDDED, overrides.USER]
