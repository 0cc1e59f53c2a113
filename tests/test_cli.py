import json
from pathlib import Path

from rcswitch_mqtt import cli


def test_show_config_prints_resolved_values(tmp_path: Path, capsys) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps(
            {
                "serial": {"path": "/dev/ttyS3"},
                "mqtt": {"options": {"host": "broker:1999", "password": "pw"}},
            }
        ),
        encoding="utf-8",
    )

    assert cli.main(["-c", str(config_path), "show-config"]) == 0

    output = capsys.readouterr().out
    resolved = json.loads(output.split("\n", 2)[2])
    assert resolved["serial"]["path"] == "/dev/ttyS3"
    assert resolved["mqtt"]["host"] == "broker"
    assert resolved["mqtt"]["port"] == 1999
    assert resolved["mqtt"]["password"] == "***"


def test_start_delegates_to_app(tmp_path: Path, monkeypatch) -> None:
    started = []

    def fake_start(config):
        started.append(config)
        return False

    monkeypatch.setattr(cli.RcSwitchBridgeApp, "start", staticmethod(fake_start))

    assert cli.main(["-c", str(tmp_path / "missing.json"), "start"]) == 1
    assert started and started[0].path == tmp_path / "missing.json"


def test_invalid_config_exits_with_error(tmp_path: Path, capsys) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("[", encoding="utf-8")

    assert cli.main(["-c", str(config_path), "show-config"]) == 1
    assert "Configuration error" in capsys.readouterr().err
