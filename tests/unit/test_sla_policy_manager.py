"""SLA policy file loading and hot reload tests"""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from tickets.infrastructure import SLAPolicyManager

POLICY_YAML = """
resolution_hours:
  critical: 2
  high: 8
fallback_hours: 12
"""


@pytest.fixture
def policy_file(tmp_path):
    path = tmp_path / "sla_config.yaml"
    path.write_text(POLICY_YAML)
    return path


class TestSLAPolicyManager:

    def test_defaults_before_load(self):
        policy = SLAPolicyManager().get_policy()
        assert policy.offset_for("critical") == timedelta(hours=4)

    def test_load_file(self, policy_file):
        manager = SLAPolicyManager()
        manager.load(policy_file)

        policy = manager.get_policy()
        assert policy.offset_for("critical") == timedelta(hours=2)
        assert policy.offset_for("high") == timedelta(hours=8)
        assert policy.offset_for("medium") == timedelta(hours=24)
        assert policy.offset_for("other") == timedelta(hours=12)

    def test_missing_file_uses_defaults(self, tmp_path):
        manager = SLAPolicyManager()
        policy = manager.load(tmp_path / "absent.yaml")
        assert policy.offset_for("low") == timedelta(hours=48)

    def test_invalid_file_fails_initial_load(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("resolution_hours:\n  critical: -1\n")
        with pytest.raises(ValidationError):
            SLAPolicyManager().load(path)

    def test_reload_applies_changes(self, policy_file):
        manager = SLAPolicyManager()
        manager.load(policy_file)

        policy_file.write_text("resolution_hours:\n  critical: 1\n")
        assert manager.reload() is True
        assert manager.get_policy().offset_for("critical") == timedelta(hours=1)

    @pytest.mark.parametrize("content", [
        "resolution_hours: [unclosed",
        "resolution_hours:\n  urgent: 3\n",
        "resolution_hours:\n  high: 0\n",
    ])
    def test_reload_keeps_previous_policy_on_bad_file(self, policy_file, content):
        manager = SLAPolicyManager()
        manager.load(policy_file)

        policy_file.write_text(content)
        assert manager.reload() is False
        assert manager.get_policy().offset_for("critical") == timedelta(hours=2)

    def test_reload_before_load(self):
        assert SLAPolicyManager().reload() is False

    def test_watch_requires_load(self):
        with pytest.raises(RuntimeError):
            SLAPolicyManager().start_watching()

    def test_start_and_stop_watching(self, policy_file):
        manager = SLAPolicyManager()
        manager.load(policy_file)
        manager.start_watching()
        manager.stop_watching()
        manager.stop_watching()
