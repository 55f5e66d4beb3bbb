"""Tests for service configuration loading."""

import json

from tracker.config import ServiceConfig
from tracker.main import load_config
from tracker.samples import OperationPhase


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config(tmp_path / "missing.json") == ServiceConfig()

    def test_from_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "log_level": "DEBUG",
            "phase": "TO_UNLOADING",
            "tracking": {"operation_id": "op-1", "logging_enabled": True,
                         "proximity": {"radius_m": 300}},
            "serial": {"port": "/dev/ttyAMA0"},
            "telemetry_csv_dir": str(tmp_path / "logs"),
        }))
        config = load_config(path)
        assert config.phase is OperationPhase.TO_UNLOADING
        assert config.tracking.operation_id == "op-1"
        assert config.tracking.proximity.radius_m == 300.0
        assert config.tracking.proximity.poll_interval_ms == 5000
        assert config.serial.port == "/dev/ttyAMA0"
        assert config.telemetry_csv_dir == tmp_path / "logs"

    def test_env_override(self, tmp_path, monkeypatch):
        path = tmp_path / "env.json"
        path.write_text(json.dumps({"log_level": "WARNING"}))
        monkeypatch.setenv("TRACKER_CONFIG", str(path))
        assert load_config().log_level == "WARNING"
