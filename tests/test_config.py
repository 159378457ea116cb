import pytest
import yaml
from pydantic import ValidationError

from conftest import make_device
from duco_fleet.config.loader import (
    ConfigError,
    generate_chip_id,
    generate_config,
    load_config,
    validate_config,
    write_config,
)
from duco_fleet.config.models import (
    Config,
    PoolAddress,
    PoolConfig,
    SupervisorConfig,
    parse_pool_address,
)

DEVICE = {
    "username": "alice",
    "device_name": "avr-1",
    "chip_id": "DUCOID0A1B2C3D",
    "target_rate": 190,
}


def write_yaml(tmp_path, data):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def test_load_minimal_config_applies_defaults(tmp_path):
    config = load_config(write_yaml(tmp_path, {"devices": [DEVICE]}))

    device = config.devices[0]
    assert device.device_type == "AVR"
    assert device.firmware == "Official AVR Miner v2.6"
    assert device.pool_address is None
    assert config.pool.pool_address is None
    assert config.pool.fallback_address == PoolAddress("server.duinocoin.com", 2813)
    assert config.pool.recv_buffer_size == 200
    assert config.supervisor.backoff_min_ms == 30_000
    assert config.supervisor.backoff_max_ms == 180_000
    assert config.miner.hasher == "sha1"


def test_zero_target_rate_is_rejected(tmp_path):
    path = write_yaml(tmp_path, {"devices": [dict(DEVICE, target_rate=0)]})
    with pytest.raises(ConfigError, match="devices.0.target_rate"):
        load_config(path)


def test_duplicate_device_names_are_rejected():
    with pytest.raises(ValidationError, match="Duplicate device names"):
        Config(devices=[make_device(), make_device(chip_id="DUCOIDFFFFFFFF")])


@pytest.mark.parametrize(
    "field, value",
    [
        ("device_name", "avr,1"),
        ("username", ""),
        ("firmware", "v2\n6"),
        ("chip_id", "x" * 129),
    ],
)
def test_wire_fields_must_be_safe(field, value):
    with pytest.raises(ValidationError):
        make_device(**{field: value})


def test_device_is_immutable():
    device = make_device()
    with pytest.raises(ValidationError):
        device.target_rate = 1


def test_empty_roster_is_rejected(tmp_path):
    with pytest.raises(ConfigError):
        load_config(write_yaml(tmp_path, {"devices": []}))


def test_empty_file_is_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("", encoding="utf-8")
    with pytest.raises(ConfigError, match="empty"):
        load_config(path)


def test_missing_file_is_rejected(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "missing.yaml")


def test_invalid_yaml_is_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("devices: [", encoding="utf-8")
    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_config(path)


def test_validate_config_reports_combined_rate(tmp_path):
    path = write_yaml(
        tmp_path,
        {"devices": [DEVICE, dict(DEVICE, device_name="avr-2", target_rate=210)]},
    )
    assert validate_config(path) == (
        True,
        "Configuration valid: 2 devices, 400 H/s combined target rate",
    )


def test_generated_roster_round_trips(tmp_path):
    config = generate_config(
        username="alice",
        device_count=4,
        device_name_prefix="avr-",
        device_type="AVR",
        firmware="Official AVR Miner v2.6",
        target_rate=190,
    )
    path = tmp_path / "config.yaml"
    write_config(config, path)

    loaded = load_config(path)
    assert loaded.get_device_names() == ["avr-1", "avr-2", "avr-3", "avr-4"]
    assert [d.chip_id for d in loaded.devices] == [d.chip_id for d in config.devices]
    assert len({d.chip_id for d in loaded.devices}) == 4
    assert "null" not in path.read_text(encoding="utf-8")


def test_generate_config_rejects_bad_identity():
    with pytest.raises(ConfigError):
        generate_config(
            username="ali,ce",
            device_count=1,
            device_name_prefix="avr-",
            device_type="AVR",
            firmware="fw",
            target_rate=190,
        )


def test_chip_id_format():
    chip_id = generate_chip_id()
    assert chip_id.startswith("DUCOID")
    assert len(chip_id) == 14
    int(chip_id[6:], 16)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("server.duinocoin.com:2813", PoolAddress("server.duinocoin.com", 2813)),
        (" 127.0.0.1:6000 ", PoolAddress("127.0.0.1", 6000)),
        ("[::1]:2813", PoolAddress("::1", 2813)),
    ],
)
def test_parse_pool_address(value, expected):
    assert parse_pool_address(value) == expected


@pytest.mark.parametrize("value", ["server", ":2813", "host:port", "host:0", "host:70000"])
def test_parse_pool_address_rejects_invalid(value):
    with pytest.raises(ValueError):
        parse_pool_address(value)


def test_pool_address_string_form():
    assert str(PoolAddress("pool.test", 2813)) == "pool.test:2813"


def test_invalid_pool_address_in_config():
    with pytest.raises(ValidationError):
        PoolConfig(address="nope")


def test_device_pool_address():
    assert make_device(pool="10.0.0.2:2811").pool_address == PoolAddress("10.0.0.2", 2811)


def test_supervisor_ranges_must_be_ordered():
    with pytest.raises(ValidationError, match="backoff_min_ms"):
        SupervisorConfig(backoff_min_ms=5_000, backoff_max_ms=1_000)
    with pytest.raises(ValidationError, match="heatup_min_ms"):
        SupervisorConfig(heatup_min_ms=20, heatup_max_ms=10)
