import pytest

from pose2stream.config import AppConfig, parse_args, validate_config


def test_validate_config_accepts_defaults():
    validate_config(AppConfig())


def test_validate_config_rejects_invalid_origin_radius():
    cfg = AppConfig(origin_radius_m=0.0)
    with pytest.raises(ValueError, match="--origin-radius-m"):
        validate_config(cfg)


def test_validate_config_rejects_inverted_recenter_window():
    cfg = AppConfig(recenter_min_gap_s=1.5, recenter_max_gap_s=0.5)
    with pytest.raises(ValueError, match="--recenter-max-gap-s"):
        validate_config(cfg)


def test_validate_config_rejects_invalid_bridge_port():
    cfg = AppConfig(bridge_port=70000)
    with pytest.raises(ValueError, match="--bridge-port"):
        validate_config(cfg)


def test_validate_config_rejects_haptic_max_below_min():
    cfg = AppConfig(haptic_min_ms=32.0, haptic_max_ms=10.0)
    with pytest.raises(ValueError, match="--haptic-max-ms"):
        validate_config(cfg)


def test_validate_config_rejects_invalid_sink():
    cfg = AppConfig(sink="bad")
    with pytest.raises(ValueError, match="--sink"):
        validate_config(cfg)


def test_parse_args_defaults():
    cfg = parse_args([])
    assert cfg.keep_center_fixed is True
    assert cfg.recenter_gesture is True
    assert cfg.prediction_ms == 30.0
    assert cfg.prediction_max_attempts == 20
    assert cfg.force_origin_after_poses == 300


def test_parse_args_reads_yaml_config(tmp_path):
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(
        "\n".join(
            [
                "keep-center-fixed: false",
                "recenter_gesture: off",
                "prediction_ms: 20",
                "sink: udp",
                "sink_port: 30000",
            ]
        ),
        encoding="utf-8",
    )
    cfg = parse_args(["--config", str(cfg_path)])
    assert cfg.keep_center_fixed is False
    assert cfg.recenter_gesture is False
    assert cfg.prediction_ms == 20.0
    assert cfg.sink == "udp"
    assert cfg.sink_port == 30000


def test_parse_args_yaml_flag_style_keys_negate(tmp_path):
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text("no-keep-center-fixed: true\nno_recenter_gesture: true\n", encoding="utf-8")
    cfg = parse_args(["--config", str(cfg_path)])
    assert cfg.keep_center_fixed is False
    assert cfg.recenter_gesture is False

    cfg_path.write_text("no-keep-center-fixed: false\n", encoding="utf-8")
    cfg = parse_args(["--config", str(cfg_path)])
    assert cfg.keep_center_fixed is True


def test_parse_args_cli_overrides_yaml(tmp_path):
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text("tracking_hz: 60\nsink: udp\n", encoding="utf-8")
    cfg = parse_args(["--config", str(cfg_path), "--tracking-hz", "120", "--sink", "log"])
    assert cfg.tracking_hz == 120.0
    assert cfg.sink == "log"


def test_parse_args_rejects_unknown_yaml_key(tmp_path):
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text("bad_key: 1\n", encoding="utf-8")
    with pytest.raises(SystemExit):
        parse_args(["--config", str(cfg_path)])


def test_parse_args_rejects_non_mapping_yaml(tmp_path):
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(SystemExit):
        parse_args(["--config", str(cfg_path)])


def test_parse_args_rejects_missing_config_file(tmp_path):
    with pytest.raises(SystemExit):
        parse_args(["--config", str(tmp_path / "missing.yaml")])


def test_parse_args_rejects_invalid_values():
    with pytest.raises(SystemExit):
        parse_args(["--tracking-hz", "0"])
