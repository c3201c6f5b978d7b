"""CLI config and defaults."""

from __future__ import annotations

import argparse
import math
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass(frozen=True)
class AppConfig:
    keep_center_fixed: bool = True
    origin_radius_m: float = 3.5
    force_origin_after_poses: int = 300
    recenter_gesture: bool = True
    recenter_min_gap_s: float = 0.5
    recenter_max_gap_s: float = 1.5
    recenter_trigger_count: int = 2
    prediction_ms: float = 30.0
    prediction_step_ms: float = 5.0
    prediction_max_attempts: int = 20
    tracking_loss_warmup_poses: int = 30
    limb_surface_offset_m: float = 0.025
    haptic_min_ms: float = 32.0
    haptic_max_ms: float = 500.0
    tracking_hz: float = 90.0
    ipd_m: float = 0.063
    bridge_host: str = "127.0.0.1"
    bridge_port: int = 24567
    sink: str = "log"
    sink_host: str = "127.0.0.1"
    sink_port: int = 24568
    log_level: str = "info"


_APP_CONFIG_FIELDS = {f.name for f in fields(AppConfig)}
_BOOL_FIELDS = {
    "keep_center_fixed",
    "recenter_gesture",
}
_INT_FIELDS = {
    "force_origin_after_poses",
    "recenter_trigger_count",
    "prediction_max_attempts",
    "tracking_loss_warmup_poses",
    "bridge_port",
    "sink_port",
}
_FLOAT_FIELDS = {
    "origin_radius_m",
    "recenter_min_gap_s",
    "recenter_max_gap_s",
    "prediction_ms",
    "prediction_step_ms",
    "limb_surface_offset_m",
    "haptic_min_ms",
    "haptic_max_ms",
    "tracking_hz",
    "ipd_m",
}
_STRING_FIELDS = {
    "bridge_host",
    "sink",
    "sink_host",
    "log_level",
}
_KEY_ALIASES = {
    "no_keep_center_fixed": "keep_center_fixed",
    "no_recenter_gesture": "recenter_gesture",
}


def _parse_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        s = value.strip().lower()
        if s in {"1", "true", "yes", "on"}:
            return True
        if s in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"config key '{key}' expects a bool, got {value!r}")


def _coerce_config_value(key: str, value: Any) -> Any:
    try:
        if key in _BOOL_FIELDS:
            return _parse_bool(value, key)
        if key in _INT_FIELDS:
            return int(value)
        if key in _FLOAT_FIELDS:
            return float(value)
        if key in _STRING_FIELDS:
            return "" if value is None else str(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid value for config key '{key}': {value!r}") from exc
    raise ValueError(f"unsupported config key '{key}'")


def _normalize_config_key(raw_key: Any) -> str:
    if not isinstance(raw_key, str):
        raise ValueError(f"config key must be string, got {type(raw_key).__name__}")
    key = raw_key.strip().replace("-", "_")
    if not key:
        raise ValueError("config key cannot be empty")
    return _KEY_ALIASES.get(key, key)


def _is_negated_key(raw_key: Any) -> bool:
    return isinstance(raw_key, str) and raw_key.strip().replace("-", "_") in _KEY_ALIASES


def _load_yaml_config(path: str) -> dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise ValueError(f"--config file not found: {p}")
    if not p.is_file():
        raise ValueError(f"--config must point to a file: {p}")

    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"failed to read --config file {p}: {exc}") from exc
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValueError(f"failed to parse YAML config {p}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ValueError(f"--config root must be a mapping/object, got {type(loaded).__name__}")

    normalized: dict[str, Any] = {}
    for raw_key, raw_value in loaded.items():
        key = _normalize_config_key(raw_key)
        if key not in _APP_CONFIG_FIELDS:
            raise ValueError(f"unknown config key in {p}: {raw_key!r}")
        value = _coerce_config_value(key, raw_value)
        if _is_negated_key(raw_key):
            value = not value
        normalized[key] = value
    return normalized


def _yaml_defaults_to_argparse_defaults(cfg: dict[str, Any]) -> dict[str, Any]:
    defaults: dict[str, Any] = {}
    for key, value in cfg.items():
        if key == "keep_center_fixed":
            defaults["no_keep_center_fixed"] = not bool(value)
        elif key == "recenter_gesture":
            defaults["no_recenter_gesture"] = not bool(value)
        else:
            defaults[key] = value
    return defaults


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="pose2stream")
    ap.add_argument(
        "--config",
        type=str,
        default="",
        help="YAML config file path. CLI args override YAML values.",
    )

    ap.add_argument(
        "--no-keep-center-fixed",
        action="store_true",
        help=(
            "Freeze the output reference frame instead of following the origin "
            "anchor; platform recenters then move the streamed world."
        ),
    )
    ap.add_argument(
        "--origin-radius-m",
        type=float,
        default=3.5,
        help="Max distance from the start point for an anchor to become the origin.",
    )
    ap.add_argument(
        "--force-origin-after-poses",
        type=int,
        default=300,
        help="Adopt the platform origin after this many sent poses if no anchor was found.",
    )
    ap.add_argument(
        "--no-recenter-gesture",
        action="store_true",
        help="Ignore the triple-update recenter gesture on the origin anchor.",
    )
    ap.add_argument("--recenter-min-gap-s", type=float, default=0.5)
    ap.add_argument("--recenter-max-gap-s", type=float, default=1.5)
    ap.add_argument(
        "--recenter-trigger-count",
        type=int,
        default=2,
        help="Consecutive qualifying gaps needed to trigger an origin reset.",
    )

    ap.add_argument(
        "--prediction-ms",
        type=float,
        default=30.0,
        help="How far ahead of now the driver asks for head poses.",
    )
    ap.add_argument(
        "--prediction-step-ms",
        type=float,
        default=5.0,
        help="Walk-back step when the platform cannot predict that far.",
    )
    ap.add_argument("--prediction-max-attempts", type=int, default=20)
    ap.add_argument(
        "--tracking-loss-warmup-poses",
        type=int,
        default=30,
        help="Sent poses before an unanswerable prediction counts as tracking loss.",
    )
    ap.add_argument(
        "--limb-surface-offset-m",
        type=float,
        default=0.025,
        help="Outward offset of the forearm/elbow trackers from the arm axis.",
    )
    ap.add_argument("--haptic-min-ms", type=float, default=32.0)
    ap.add_argument("--haptic-max-ms", type=float, default=500.0)

    ap.add_argument(
        "--tracking-hz",
        type=float,
        default=90.0,
        help="Pose streaming cadence in Hz.",
    )
    ap.add_argument(
        "--ipd-m",
        type=float,
        default=0.063,
        help="Eye separation for the default view transforms.",
    )
    ap.add_argument(
        "--bridge-host",
        type=str,
        default="127.0.0.1",
        help="Host to bind for the spatial platform bridge UDP stream.",
    )
    ap.add_argument(
        "--bridge-port",
        type=int,
        default=24567,
        help="Port to bind for the spatial platform bridge UDP stream.",
    )
    ap.add_argument(
        "--sink",
        choices=["log", "udp"],
        default="log",
        help="Streaming sink: debug log only, or JSON packets over UDP.",
    )
    ap.add_argument("--sink-host", type=str, default="127.0.0.1")
    ap.add_argument("--sink-port", type=int, default=24568)
    ap.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        default="info",
        help="Global log level.",
    )

    return ap


def validate_config(cfg: AppConfig) -> None:
    if not math.isfinite(cfg.origin_radius_m) or cfg.origin_radius_m <= 0.0:
        raise ValueError(f"--origin-radius-m must be > 0, got {cfg.origin_radius_m}")
    if cfg.force_origin_after_poses < 0:
        raise ValueError(
            f"--force-origin-after-poses must be >= 0, got {cfg.force_origin_after_poses}"
        )
    if cfg.recenter_min_gap_s < 0.0:
        raise ValueError(f"--recenter-min-gap-s must be >= 0, got {cfg.recenter_min_gap_s}")
    if cfg.recenter_max_gap_s <= cfg.recenter_min_gap_s:
        raise ValueError(
            "--recenter-max-gap-s must be greater than --recenter-min-gap-s, "
            f"got {cfg.recenter_max_gap_s} <= {cfg.recenter_min_gap_s}"
        )
    if cfg.recenter_trigger_count < 1:
        raise ValueError(
            f"--recenter-trigger-count must be >= 1, got {cfg.recenter_trigger_count}"
        )
    if cfg.prediction_ms < 0.0:
        raise ValueError(f"--prediction-ms must be >= 0, got {cfg.prediction_ms}")
    if cfg.prediction_step_ms <= 0.0:
        raise ValueError(f"--prediction-step-ms must be > 0, got {cfg.prediction_step_ms}")
    if cfg.prediction_max_attempts < 1:
        raise ValueError(
            f"--prediction-max-attempts must be >= 1, got {cfg.prediction_max_attempts}"
        )
    if cfg.tracking_loss_warmup_poses < 0:
        raise ValueError(
            f"--tracking-loss-warmup-poses must be >= 0, got {cfg.tracking_loss_warmup_poses}"
        )
    if not (0.0 <= cfg.limb_surface_offset_m <= 0.2):
        raise ValueError(
            f"--limb-surface-offset-m must be in [0,0.2], got {cfg.limb_surface_offset_m}"
        )
    if cfg.haptic_min_ms <= 0.0:
        raise ValueError(f"--haptic-min-ms must be > 0, got {cfg.haptic_min_ms}")
    if cfg.haptic_max_ms < cfg.haptic_min_ms:
        raise ValueError(
            f"--haptic-max-ms must be >= --haptic-min-ms, got {cfg.haptic_max_ms} < {cfg.haptic_min_ms}"
        )
    if cfg.tracking_hz <= 0.0:
        raise ValueError(f"--tracking-hz must be > 0, got {cfg.tracking_hz}")
    if not (0.0 <= cfg.ipd_m <= 0.1):
        raise ValueError(f"--ipd-m must be in [0,0.1], got {cfg.ipd_m}")
    if not cfg.bridge_host.strip():
        raise ValueError("--bridge-host must be non-empty")
    if not (1 <= cfg.bridge_port <= 65535):
        raise ValueError(f"--bridge-port must be in [1,65535], got {cfg.bridge_port}")
    if cfg.sink not in {"log", "udp"}:
        raise ValueError(f"--sink must be one of log|udp, got {cfg.sink}")
    if cfg.sink == "udp" and not cfg.sink_host.strip():
        raise ValueError("--sink-host must be non-empty")
    if not (1 <= cfg.sink_port <= 65535):
        raise ValueError(f"--sink-port must be in [1,65535], got {cfg.sink_port}")
    if cfg.log_level not in {"debug", "info", "warning", "error"}:
        raise ValueError(f"--log-level must be one of debug|info|warning|error, got {cfg.log_level}")


def parse_args(argv=None) -> AppConfig:
    bootstrap = argparse.ArgumentParser(add_help=False)
    bootstrap.add_argument("--config", type=str, default="")
    bootstrap_ns, _ = bootstrap.parse_known_args(argv)

    yaml_cfg: dict[str, Any] = {}
    yaml_error: Optional[str] = None
    if bootstrap_ns.config:
        try:
            yaml_cfg = _load_yaml_config(bootstrap_ns.config)
        except ValueError as exc:
            yaml_error = str(exc)

    ap = build_arg_parser()
    if yaml_error is not None:
        ap.error(yaml_error)
    if yaml_cfg:
        ap.set_defaults(**_yaml_defaults_to_argparse_defaults(yaml_cfg))
    args = ap.parse_args(argv)

    cfg = AppConfig(
        keep_center_fixed=not args.no_keep_center_fixed,
        origin_radius_m=args.origin_radius_m,
        force_origin_after_poses=args.force_origin_after_poses,
        recenter_gesture=not args.no_recenter_gesture,
        recenter_min_gap_s=args.recenter_min_gap_s,
        recenter_max_gap_s=args.recenter_max_gap_s,
        recenter_trigger_count=args.recenter_trigger_count,
        prediction_ms=float(args.prediction_ms),
        prediction_step_ms=float(args.prediction_step_ms),
        prediction_max_attempts=args.prediction_max_attempts,
        tracking_loss_warmup_poses=args.tracking_loss_warmup_poses,
        limb_surface_offset_m=args.limb_surface_offset_m,
        haptic_min_ms=args.haptic_min_ms,
        haptic_max_ms=args.haptic_max_ms,
        tracking_hz=float(args.tracking_hz),
        ipd_m=args.ipd_m,
        bridge_host=args.bridge_host,
        bridge_port=args.bridge_port,
        sink=args.sink,
        sink_host=args.sink_host,
        sink_port=args.sink_port,
        log_level=args.log_level,
    )
    try:
        validate_config(cfg)
    except ValueError as exc:
        ap.error(str(exc))
    return cfg
