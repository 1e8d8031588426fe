import pytest

from topo.config import ReconcilerConfig, load_config, parse_listen_uri
from topo.errors import ConfigError


def test_defaults_without_file_or_env():
    cfg = load_config(None, environ={})

    assert cfg == ReconcilerConfig()
    assert cfg.poll_interval_s == 10.0
    assert cfg.listen_uri == ""


def test_yaml_then_env_then_flags(tmp_path):
    path = tmp_path / "reconciler.yaml"
    path.write_text(
        "reconciler:\n"
        "  poll_interval_s: 30\n"
        "  namespace: batch\n"
        "  track_bound_workloads: false\n"
    )

    cfg = load_config(str(path), environ={"TOPO_NAMESPACE": "prod", "TOPO_LOG_FORMAT": "json"})
    assert cfg.poll_interval_s == 30.0
    assert cfg.namespace == "prod"
    assert cfg.track_bound_workloads is False
    assert cfg.log_format == "json"

    cfg = cfg.with_overrides(poll_interval_s=2.5, namespace=None)
    assert cfg.poll_interval_s == 2.5
    assert cfg.namespace == "prod"


def test_missing_file_is_an_error(tmp_path):
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "absent.yaml"), environ={})


@pytest.mark.parametrize("env", [
    {"TOPO_POLL_INTERVAL_S": "0"},
    {"TOPO_POLL_INTERVAL_S": "soon"},
    {"TOPO_TRACK_BOUND_WORKLOADS": "maybe"},
    {"TOPO_LOG_FORMAT": "xml"},
    {"TOPO_LOG_LEVEL": "LOUD"},
    {"TOPO_LISTEN_URI": "localhost"},
])
def test_invalid_values_are_rejected(env):
    with pytest.raises(ConfigError):
        load_config(None, environ=env)


def test_unknown_yaml_keys_are_rejected(tmp_path):
    path = tmp_path / "reconciler.yaml"
    path.write_text("poll_every: 5\n")

    with pytest.raises(ConfigError):
        load_config(str(path), environ={})


@pytest.mark.parametrize("uri,expected", [
    ("0.0.0.0:8080", ("0.0.0.0", 8080)),
    ("http://127.0.0.1:9000", ("127.0.0.1", 9000)),
    (":8081", ("0.0.0.0", 8081)),
])
def test_parse_listen_uri(uri, expected):
    assert parse_listen_uri(uri) == expected
