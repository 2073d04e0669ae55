"""Capture policy: retry budgets, backoff and settle delays (parsing + defaults)."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any

MAX_FRAMES_LIMIT = 200
DEFAULT_MAX_FRAMES = 50


@dataclass(frozen=True, slots=True)
class CapturePolicy:
    max_captures_per_second: float = 2.0
    capture_retries: int = 2
    max_consecutive_failures: int = 3
    duplicate_retries: int = 3
    duplicate_retry_delay_s: float = 0.5
    final_settle_s: float = 1.0
    navigate_attempts: int = 3
    navigate_backoff_s: float = 0.5
    channel_timeout_s: float = 5.0
    ping_timeout_s: float = 1.0
    verify_timeout_s: float = 3.0
    verify_attempts: int = 3
    verify_gap_s: float = 1.0
    inject_settle_s: float = 1.5
    reinject_settle_s: float = 2.0
    page_info_timeout_s: float = 3.0
    unlock_timeout_s: float = 10.0
    prepare_timeout_s: float = 5.0
    activation_delay_s: float = 0.5
    render_delay_s: float = 0.1

    @classmethod
    def from_env(cls) -> CapturePolicy:
        """Build a policy from DECK_* environment variables (invalid values are ignored)."""
        policy, _warnings, _errors = parse_policy_args(policy_args_from_env())
        return policy


_PROFILE_DEFAULTS: dict[str, dict[str, Any]] = {
    "fast": {
        "capture_retries": 1,
        "duplicate_retries": 1,
        "navigate_attempts": 2,
        "channel_timeout_s": 3.0,
        "final_settle_s": 0.5,
    },
    "default": {},
    "patient": {
        "capture_retries": 3,
        "duplicate_retries": 4,
        "navigate_attempts": 4,
        "navigate_backoff_s": 0.8,
        "channel_timeout_s": 10.0,
        "final_settle_s": 1.5,
        "reinject_settle_s": 3.0,
    },
}

_INT_KEYS: dict[str, tuple[int, int]] = {
    "capture_retries": (0, 5),
    "max_consecutive_failures": (1, 10),
    "duplicate_retries": (0, 5),
    "navigate_attempts": (1, 5),
    "verify_attempts": (1, 5),
}

_FLOAT_KEYS: dict[str, tuple[float, float]] = {
    "max_captures_per_second": (0.1, 10.0),
    "duplicate_retry_delay_s": (0.0, 5.0),
    "final_settle_s": (0.0, 10.0),
    "navigate_backoff_s": (0.0, 5.0),
    "channel_timeout_s": (0.5, 60.0),
    "ping_timeout_s": (0.2, 10.0),
    "verify_timeout_s": (0.2, 30.0),
    "verify_gap_s": (0.0, 10.0),
    "inject_settle_s": (0.0, 10.0),
    "reinject_settle_s": (0.0, 10.0),
    "page_info_timeout_s": (0.2, 30.0),
    "unlock_timeout_s": (0.5, 60.0),
    "prepare_timeout_s": (0.2, 30.0),
    "activation_delay_s": (0.0, 5.0),
    "render_delay_s": (0.0, 5.0),
}


def _coerce_boolish(value: Any) -> tuple[bool | None, bool]:
    if value is None:
        return None, True
    if isinstance(value, bool):
        return value, True
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value), True
    if isinstance(value, str):
        v = value.strip().lower()
        if v in {"true", "1", "yes", "y", "on"}:
            return True, True
        if v in {"false", "0", "no", "n", "off"}:
            return False, True
    return None, False


def _coerce_int(value: Any, *, lo: int, hi: int) -> tuple[int | None, bool]:
    if value is None or isinstance(value, bool):
        return None, False
    try:
        num = int(value)
    except (TypeError, ValueError):
        return None, False
    if num < lo or num > hi:
        return None, False
    return num, True


def _coerce_float(value: Any, *, lo: float, hi: float) -> tuple[float | None, bool]:
    if value is None or isinstance(value, bool):
        return None, False
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None, False
    if num < lo or num > hi:
        return None, False
    return num, True


def policy_args_from_env() -> dict[str, Any]:
    """Collect DECK_<FIELD> overrides (plus DECK_POLICY_PROFILE and DECK_STRICT_PARAMS) as raw strings."""
    out: dict[str, Any] = {}
    profile = os.environ.get("DECK_POLICY_PROFILE")
    if profile and profile.strip():
        out["profile"] = profile.strip()
    strict = os.environ.get("DECK_STRICT_PARAMS")
    if strict and strict.strip():
        out["strict_params"] = strict.strip()
    for f in fields(CapturePolicy):
        raw = os.environ.get(f"DECK_{f.name.upper()}")
        if raw is not None and raw.strip():
            out[f.name] = raw.strip()
    return out


def clamp_max_frames(value: Any) -> int:
    """Clamp a requested frame budget to 1..MAX_FRAMES_LIMIT (default when unparsable)."""
    if value is None or isinstance(value, bool):
        return DEFAULT_MAX_FRAMES
    try:
        num = int(value)
    except (TypeError, ValueError):
        return DEFAULT_MAX_FRAMES
    return max(1, min(num, MAX_FRAMES_LIMIT))


def parse_policy_args(args: dict[str, Any]) -> tuple[CapturePolicy, list[str], list[str]]:
    """Coerce caller overrides into a CapturePolicy.

    Lenient by default: invalid values fall back to the profile default and
    produce a warning. With `strict_params` they are reported as errors.
    """
    src = dict(args or {})
    warnings: list[str] = []
    errors: list[str] = []

    strict, ok = _coerce_boolish(src.pop("strict_params", False))
    strict = bool(strict) if ok else False

    profile = str(src.pop("profile", None) or "default").strip().lower()
    if profile not in _PROFILE_DEFAULTS:
        msg = f"profile: expected one of {sorted(_PROFILE_DEFAULTS)}"
        if strict:
            errors.append(msg)
        else:
            warnings.append(msg + "; defaulted to 'default'")
        profile = "default"

    values: dict[str, Any] = dict(_PROFILE_DEFAULTS[profile])

    for key, raw in src.items():
        if raw is None:
            continue
        if key in _INT_KEYS:
            lo, hi = _INT_KEYS[key]
            coerced, ok = _coerce_int(raw, lo=lo, hi=hi)
            reason = f"expected integer {lo}-{hi}"
        elif key in _FLOAT_KEYS:
            lo_f, hi_f = _FLOAT_KEYS[key]
            coerced, ok = _coerce_float(raw, lo=lo_f, hi=hi_f)
            reason = f"expected number {lo_f}-{hi_f}"
        else:
            (errors if strict else warnings).append(f"{key}: unknown policy key")
            continue
        if ok and coerced is not None:
            values[key] = coerced
        elif strict:
            errors.append(f"{key}: {reason}")
        else:
            warnings.append(f"{key}: {reason}; using default")

    return CapturePolicy(**values), warnings, errors


__all__ = [
    "DEFAULT_MAX_FRAMES",
    "MAX_FRAMES_LIMIT",
    "CapturePolicy",
    "clamp_max_frames",
    "parse_policy_args",
    "policy_args_from_env",
]
