import os

import numpy as np
import pytest
import yaml

from davinci_kinematics.config import DEFAULT_CONFIG, KinematicsConfig, create_default_config
from davinci_kinematics.dh_definitions import DHParameterSet
from davinci_kinematics.error_handling import ConfigurationError
from davinci_kinematics.inverse_kinematics import DavinciInverseKinematics

pytestmark = pytest.mark.kinematics


@pytest.fixture
def clean_env(monkeypatch):
    """Keep stray DAVINCI_* variables out of the tests."""
    for key in list(os.environ):
        if key.startswith("DAVINCI_"):
            monkeypatch.delenv(key)
    return monkeypatch


def write_yaml(path, data):
    with open(path, "w") as f:
        yaml.safe_dump(data, f)
    return str(path)


class TestKinematicsConfig:

    def test_defaults(self, clean_env):
        config = KinematicsConfig()
        assert config.dh_parameters() == DHParameterSet.default()
        assert config.get_solver_params() == {
            "limit_tolerance": 1e-9,
            "verification_tolerance": 1e-6,
            "pose_tolerance": 1e-6,
            "jaw_opening": 0.0,
        }
        assert config.get_logging_config()["level"] == "INFO"

    def test_defaults_are_not_shared(self, clean_env):
        config = KinematicsConfig()
        config.update_config({"solver": {"jaw_opening": 0.5}})
        assert DEFAULT_CONFIG["solver"]["jaw_opening"] == 0.0
        assert KinematicsConfig().get_solver_params()["jaw_opening"] == 0.0

    def test_load_yaml(self, tmp_path, clean_env):
        rows = DHParameterSet.default().replace_link(2, q_offset=0.1, q_min=-0.05).to_rows()
        path = write_yaml(tmp_path / "config.yaml", {
            "robot": {"dh_parameters": rows},
            "solver": {"limit_tolerance": 1e-8},
        })
        config = KinematicsConfig(path)
        assert config.dh_parameters().links[2].q_offset == 0.1
        assert config.get_solver_params()["limit_tolerance"] == 1e-8
        # untouched values keep their defaults
        assert config.get_solver_params()["pose_tolerance"] == 1e-6

    def test_environment_section(self, tmp_path, clean_env):
        path = write_yaml(tmp_path / "config.yaml", {
            "solver": {"jaw_opening": 0.1},
            "environments": {"development": {"solver": {"jaw_opening": 0.3},
                                             "logging": {"level": "DEBUG"}}},
        })
        assert KinematicsConfig(path).get_solver_params()["jaw_opening"] == 0.1
        dev = KinematicsConfig(path, environment="development")
        assert dev.get_solver_params()["jaw_opening"] == 0.3
        assert dev.get_logging_config()["level"] == "DEBUG"

    def test_environment_variable_override(self, clean_env):
        clean_env.setenv("DAVINCI_SOLVER_LIMIT_TOLERANCE", "1e-7")
        clean_env.setenv("DAVINCI_LOGGING_LEVEL", "WARNING")
        clean_env.setenv("DAVINCI_ROBOT_GRIPPER_JAW_LENGTH", "5")  # robot section is file-only
        config = KinematicsConfig()
        assert config.get_solver_params()["limit_tolerance"] == 1e-7
        assert config.get_logging_config()["level"] == "WARNING"
        assert config.dh_parameters().gripper_jaw_length == DHParameterSet.default().gripper_jaw_length

    def test_missing_file(self, tmp_path, clean_env):
        with pytest.raises(ConfigurationError):
            KinematicsConfig(str(tmp_path / "missing.yaml"))

    def test_malformed_yaml(self, tmp_path, clean_env):
        path = tmp_path / "bad.yaml"
        path.write_text("solver: [unclosed\n")
        with pytest.raises(ConfigurationError):
            KinematicsConfig(str(path))

    @pytest.mark.parametrize("solver_section", [
        {"limit_tolerance": -1.0},
        {"verification_tolerance": 1.0},
        {"pose_tolerance": "tight"},
        {"jaw_opening": True},
    ])
    def test_out_of_range_solver_values(self, tmp_path, clean_env, solver_section):
        path = write_yaml(tmp_path / "config.yaml", {"solver": solver_section})
        with pytest.raises(ConfigurationError):
            KinematicsConfig(path)

    def test_invalid_logging_level(self, clean_env):
        clean_env.setenv("DAVINCI_LOGGING_LEVEL", "LOUD")
        with pytest.raises(ConfigurationError):
            KinematicsConfig()

    @pytest.mark.parametrize("robot_section", [
        {"dh_parameters": DHParameterSet.default().to_rows()[:6]},
        {"dh_parameters": [dict(row, q_min=1.0, q_max=-1.0) for row in DHParameterSet.default().to_rows()]},
        {"dh_parameters": [dict(row, theta=0.0) for row in DHParameterSet.default().to_rows()]},
        {"dh_parameters": "not a list"},
        {"gripper_jaw_length": 0.0},
    ])
    def test_invalid_dh_table(self, tmp_path, clean_env, robot_section):
        path = write_yaml(tmp_path / "config.yaml", {"robot": robot_section})
        with pytest.raises(ConfigurationError):
            KinematicsConfig(path)

    def test_update_config_validates(self, clean_env):
        config = KinematicsConfig()
        with pytest.raises(ConfigurationError):
            config.update_config({"solver": {"pose_tolerance": 10.0}})

    def test_save_and_reload(self, tmp_path, clean_env):
        config = KinematicsConfig()
        config.update_config({"solver": {"jaw_opening": 0.25}})
        out = tmp_path / "saved.yaml"
        config.save_config(str(out))
        reloaded = KinematicsConfig(str(out))
        assert reloaded.get_solver_params()["jaw_opening"] == 0.25
        assert reloaded.dh_parameters() == config.dh_parameters()

    def test_save_without_path(self, clean_env):
        with pytest.raises(ConfigurationError):
            KinematicsConfig().save_config()

    def test_create_default_config(self, tmp_path, clean_env):
        out = create_default_config(str(tmp_path / "default.yaml"))
        config = KinematicsConfig(out)
        assert config.dh_parameters() == DHParameterSet.default()


class TestSolverFromConfig:

    def test_from_config(self, tmp_path, clean_env):
        rows = DHParameterSet.default().replace_link(2, q_offset=0.1, q_min=-0.05).to_rows()
        path = write_yaml(tmp_path / "config.yaml", {
            "robot": {"dh_parameters": rows},
            "solver": {"limit_tolerance": 1e-8, "jaw_opening": 0.2},
        })
        solver = DavinciInverseKinematics.from_config(KinematicsConfig(path))
        assert solver.limit_tolerance == 1e-8
        assert solver.jaw_opening == 0.2

        result = solver.ik_solve(solver.fwd.home_pose())
        assert result.success
        assert np.allclose(result.get_soln(), [0, 0, 0, 0, 0, 0, 0.2], atol=1e-9)
