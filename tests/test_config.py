"""Tests for config -- startup parameters and YAML loading."""

import pytest

import config
from config import NodeConfig, Parameters, config_from_dict, load_config
from exceptions import ConfigError


class TestDefaults:
    def test_parameters(self):
        params = Parameters()
        assert params.importance_weight == 1.0
        assert params.minimum_margin == 0.01
        assert params.convergence_threshold == 1e-4
        assert params.max_iterations == 30

    def test_node(self):
        cfg = NodeConfig()
        assert cfg.swarm_timeout == 5.0
        assert cfg.loop_rate == 1.5
        assert cfg.visualize is False
        assert cfg.parameters == Parameters()

    def test_immutable(self):
        with pytest.raises(AttributeError):
            Parameters().max_iterations = 10


class TestValidation:
    @pytest.mark.parametrize("kwargs", [
        {"max_iterations": 0},
        {"max_iterations": -3},
        {"max_iterations": 2.5},
        {"minimum_margin": 0.0},
        {"minimum_margin": 1.5},
        {"convergence_threshold": -0.1},
        {"convergence_threshold": 2.0},
        {"importance_weight": -1.0},
        {"stall_rounds": 0},
    ])
    def test_bad_parameters(self, kwargs):
        with pytest.raises(ConfigError):
            Parameters(**kwargs)

    @pytest.mark.parametrize("kwargs", [
        {"swarm_timeout": 0},
        {"swarm_timeout": -1.0},
        {"loop_rate": 0},
    ])
    def test_bad_node_config(self, kwargs):
        with pytest.raises(ConfigError):
            NodeConfig(**kwargs)


class TestLoadConfig:
    def test_yaml_file(self, tmp_path):
        path = tmp_path / "area.yaml"
        path.write_text(
            "area_division:\n"
            "  swarm_timeout: 2.5\n"
            "  visualize: true\n"
            "  optimizer:\n"
            "    max_iterations: 60\n"
            "    minimum_margin: 0.05\n"
        )
        cfg = load_config(str(path))
        assert cfg.swarm_timeout == 2.5
        assert cfg.visualize is True
        assert cfg.loop_rate == config.LOOP_RATE
        assert cfg.parameters.max_iterations == 60
        assert cfg.parameters.minimum_margin == 0.05
        assert cfg.parameters.convergence_threshold == config.CONVERGENCE_THRESHOLD

    def test_env_var(self, tmp_path, monkeypatch):
        path = tmp_path / "area.yaml"
        path.write_text("area_division:\n  swarm_timeout: 9\n")
        monkeypatch.setenv(config.CONFIG_ENV, str(path))
        assert load_config().swarm_timeout == 9

    def test_defaults_without_file(self, monkeypatch):
        monkeypatch.delenv(config.CONFIG_ENV, raising=False)
        assert load_config() == NodeConfig()

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(str(path)) == NodeConfig()

    def test_invalid_value_is_fatal(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("area_division:\n  optimizer:\n    max_iterations: 0\n")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_unknown_key(self):
        with pytest.raises(ConfigError, match="queue_sz"):
            config_from_dict({"area_division": {"queue_sz": 1}})

    def test_scalar_section(self):
        with pytest.raises(ConfigError):
            config_from_dict({"area_division": 3})
        with pytest.raises(ConfigError):
            config_from_dict(["not", "a", "mapping"])

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("area_division: [unclosed\n")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(str(tmp_path / "nope.yaml"))
