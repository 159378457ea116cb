from click.testing import CliRunner

from duco_fleet import __version__
from duco_fleet.cli import main
from duco_fleet.config.loader import load_config


def test_generate_then_validate(tmp_path):
    runner = CliRunner()
    path = tmp_path / "fleet.yaml"

    result = runner.invoke(
        main,
        ["generate", "-o", str(path), "-u", "alice", "--device-count", "3", "--target-rate", "250"],
    )
    assert result.exit_code == 0, result.output
    assert f"Created {path} with 3 devices" in result.output

    config = load_config(path)
    assert config.get_device_names() == ["avr-1", "avr-2", "avr-3"]
    assert all(d.username == "alice" and d.target_rate == 250 for d in config.devices)

    result = runner.invoke(main, ["validate", str(path)])
    assert result.exit_code == 0, result.output
    assert "Configuration valid: 3 devices, 750 H/s combined target rate" in result.output
    assert "avr-2: AVR 250 H/s" in result.output


def test_generate_refuses_to_overwrite_without_confirmation(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("original", encoding="utf-8")

    result = CliRunner().invoke(main, ["generate", "-o", str(path)], input="n\n")

    assert result.exit_code == 0
    assert "Skipping roster creation." in result.output
    assert path.read_text(encoding="utf-8") == "original"


def test_generate_force_overwrites(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("original", encoding="utf-8")

    result = CliRunner().invoke(main, ["generate", "-o", str(path), "--device-count", "1", "-f"])

    assert result.exit_code == 0
    assert load_config(path).get_device_names() == ["avr-1"]


def test_validate_reports_errors(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("devices:\n  - username: alice\n", encoding="utf-8")

    result = CliRunner().invoke(main, ["validate", str(path)])

    assert result.exit_code == 1
    assert "Configuration validation failed" in result.output


def test_run_rejects_bad_pool_option(tmp_path):
    path = tmp_path / "config.yaml"
    CliRunner().invoke(main, ["generate", "-o", str(path), "--device-count", "1"])

    result = CliRunner().invoke(main, ["run", "-c", str(path), "-p", "no-port"])

    assert result.exit_code == 2
    assert "Invalid pool address" in result.output


def test_version():
    result = CliRunner().invoke(main, ["--version"])
    assert __version__ in result.output
