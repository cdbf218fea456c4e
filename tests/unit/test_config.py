"""Tests for YAML configuration loading and validation."""

import pytest
import yaml

from cutover.config import STATE_DIR_ENV, CutoverConfig, validate_steps
from cutover.errors import ConfigError, InvalidStepsError


CONFIG_YAML = """
state_dir: /var/lib/cutover
targets:
  cdn:
    slots:
      blue: {backing_resource_id: audit-system-blue-dist}
      green: {backing_resource_id: audit-system-green-dist}
    health:
      max_error_rate: 0.02
  api:
    slots:
      blue: {backing_resource_id: blue-stage}
      green: {backing_resource_id: green-stage}
    required_entry_point: openapi.json
    readiness_path: openapi.json
    shift:
      steps: [10, 100]
      settle_seconds: 5
approval: {interval_seconds: 5, timeout_seconds: 900}
"""


class TestValidateSteps:
    def test_default_plan(self) -> None:
        assert validate_steps([0, 25, 50, 75, 100]) == [0, 25, 50, 75, 100]

    @pytest.mark.parametrize("steps", [[], [0, 50, 50, 100], [0, 50], [-5, 100], [0, 150]])
    def test_invalid_plans(self, steps) -> None:
        with pytest.raises(InvalidStepsError):
            validate_steps(steps)


class TestCutoverConfig:
    def test_defaults(self) -> None:
        c = CutoverConfig()
        assert c.health.max_error_rate == 0.01
        assert c.health.max_latency_p95_ms == 1000
        assert c.health.min_cache_hit_rate == 0.8
        assert c.approval.timeout_seconds == 3600
        assert c.approval.interval_seconds == 10
        assert c.propagation.max_retries == 20
        assert c.propagation.interval_seconds == 30
        assert c.shift.steps == [0, 25, 50, 75, 100]
        assert c.environments["production"].require_approval
        assert not c.environments["staging"].require_approval

    def test_from_yaml(self, tmp_path) -> None:
        path = tmp_path / "cutover.yaml"
        path.write_text(CONFIG_YAML)
        c = CutoverConfig.from_yaml(path)
        assert c.state_dir == "/var/lib/cutover"
        assert c.approval.timeout_seconds == 900
        t = c.target("cdn", "production")
        assert t.target_id == "cdn-production"
        assert t.slots == {"blue": "audit-system-blue-dist", "green": "audit-system-green-dist"}
        assert t.require_approval

    def test_per_target_overrides(self, tmp_path) -> None:
        path = tmp_path / "cutover.yaml"
        path.write_text(CONFIG_YAML)
        c = CutoverConfig.from_yaml(path)
        assert c.health_for("cdn").max_error_rate == 0.02
        assert c.health_for("api").max_error_rate == 0.01
        assert c.shift_for("api").steps == [10, 100]
        assert c.shift_for("cdn").steps == [0, 25, 50, 75, 100]

    def test_env_overrides_state_dir(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv(STATE_DIR_ENV, str(tmp_path / "override"))
        c = CutoverConfig.from_dict({})
        assert c.state_dir == str(tmp_path / "override")

    def test_invalid_steps_raise_config_error(self) -> None:
        with pytest.raises(ConfigError):
            CutoverConfig.from_dict({"shift": {"steps": [0, 50]}})

    def test_invalid_threshold_raises_config_error(self) -> None:
        with pytest.raises(ConfigError):
            CutoverConfig.from_dict({"health": {"max_error_rate": 2}})

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            CutoverConfig.from_yaml(tmp_path / "nope.yaml")

    def test_non_mapping_root(self, tmp_path) -> None:
        path = tmp_path / "cutover.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError):
            CutoverConfig.from_yaml(path)

    def test_unknown_target_or_environment(self) -> None:
        c = CutoverConfig.from_dict({"targets": {"cdn": {}}})
        with pytest.raises(ConfigError, match="Unknown target kind"):
            c.target("workload", "production")
        with pytest.raises(ConfigError, match="Unknown environment"):
            c.target("cdn", "qa")

    def test_to_yaml(self, tmp_path) -> None:
        c = CutoverConfig.from_dict({"targets": {"cdn": {}}})
        out = tmp_path / "out.yaml"
        c.to_yaml(out)
        data = yaml.safe_load(out.read_text())
        assert data["shift"]["steps"] == [0, 25, 50, 75, 100]
        assert "cdn" in data["targets"]
