from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path


def env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    try:
        return float(v)
    except ValueError:
        return default


def load_env_file(path: Path) -> dict[str, str]:
    """
    Export `KEY=VALUE` pairs from a dotenv file into `os.environ`.

    Variables already set in the process win. Returns what was exported.
    """
    if not path.is_file():
        return {}
    exported: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        key, sep, value = line.strip().removeprefix("export ").partition("=")
        key = key.strip()
        if not sep or not key or key.startswith("#") or key in os.environ:
            continue
        value = value.strip()
        if value[:1] in ("'", '"') and value.endswith(value[0]) and len(value) > 1:
            value = value[1:-1]
        os.environ[key] = exported[key] = value
    return exported


# Stream endpoint names, matching the page-side / extension-side split.
INPAGE = "wallet-gate-inpage"
CONTENT_SCRIPT = "wallet-gate-contentscript"


@dataclass(frozen=True)
class GateConfig:
    provider_attr: str = "ethereum"
    poll_interval_s: float = 0.1
    # how often an installed gate checks that the host still exposes its wrappers
    watch_interval_s: float = 1.0
    inpage_name: str = INPAGE
    content_script_name: str = CONTENT_SCRIPT
    rejection_prefix: str = "Wallet Gate Confirmation"
    log_level: str = "INFO"
    enabled: bool = True

    @classmethod
    def from_env(cls) -> "GateConfig":
        return cls(
            provider_attr=os.getenv("GATE_PROVIDER_ATTR", "ethereum").strip() or "ethereum",
            poll_interval_s=max(0.01, env_float("GATE_POLL_INTERVAL_MS", 100.0) / 1000.0),
            watch_interval_s=max(0.01, env_float("GATE_WATCH_INTERVAL_MS", 1000.0) / 1000.0),
            inpage_name=os.getenv("GATE_INPAGE_NAME", INPAGE).strip() or INPAGE,
            content_script_name=os.getenv("GATE_CONTENT_SCRIPT_NAME", CONTENT_SCRIPT).strip() or CONTENT_SCRIPT,
            rejection_prefix=os.getenv("GATE_REJECTION_PREFIX", "Wallet Gate Confirmation").strip(),
            log_level=os.getenv("GATE_LOG_LEVEL", "INFO").strip().upper() or "INFO",
            enabled=env_bool("GATE_ENABLED", True),
        )

    def rejection_message(self, what: str) -> str:
        text = f"User denied {what}."
        return f"{self.rejection_prefix}: {text}" if self.rejection_prefix else text


def configure_logging(cfg: GateConfig | None = None) -> None:
    cfg = cfg or GateConfig.from_env()
    level = logging.getLevelName(cfg.log_level)
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
