import dataclasses
import logging
import os
import tomllib
from dataclasses import dataclass
from typing import Any, Mapping

logger = logging.getLogger(__name__)


@dataclass
class GatewayConfig:
    temporal_address: str = "localhost:7233"
    temporal_namespace: str = "default"
    task_queue: str = "ecommerce-oneclick"
    poll_interval: float = 1.0  # seconds between progress polls
    payload_preview_chars: int = 300
    cover_generation_enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "GatewayConfig":
        """Build from a config mapping; unknown keys are ignored."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(unknown)}")
        return cls(**{k: v for k, v in values.items() if k in known})


def load_bookflow_toml(path: str | None = None) -> dict[str, Any]:
    """Load a ``bookflow.toml`` configuration file.

    Searches (in order):
    1. The explicit ``path`` argument.
    2. ``$BOOKFLOW_CONFIG`` environment variable.
    3. ``bookflow.toml`` in the current working directory.

    Returns an empty dict (plus env overrides) if no file is found.

    The TOML file can contain a ``[bookflow]`` section with any of the
    following keys (all optional):

    .. code-block:: toml

        [bookflow]
        temporal_address = "localhost:7233"
        temporal_namespace = "default"
        task_queue = "ecommerce-oneclick"
        poll_interval = 1.0
        payload_preview_chars = 300
        cover_generation_enabled = false
        host = "0.0.0.0"
        port = 8000
        log_level = "INFO"

    Environment variables prefixed with ``BOOKFLOW_`` override TOML values
    (e.g. ``BOOKFLOW_POLL_INTERVAL=0.5``). ``ENABLE_COVER_GENERATION`` is
    honoured as well.
    """
    candidates = [
        path,
        os.getenv("BOOKFLOW_CONFIG"),
        "bookflow.toml",
    ]
    for candidate in candidates:
        if candidate and os.path.exists(candidate):
            with open(candidate, "rb") as fh:
                data = tomllib.load(fh)
            result: dict[str, Any] = data.get("bookflow", {})
            _apply_env_overrides(result)
            return result

    result = {}
    _apply_env_overrides(result)
    return result


def load_config(path: str | None = None) -> GatewayConfig:
    return GatewayConfig.from_mapping(load_bookflow_toml(path))


def _parse_bool(value: str) -> bool:
    return value.lower() in ("1", "true", "yes")


def _apply_env_overrides(cfg: dict[str, Any]) -> None:
    """Apply ``BOOKFLOW_*`` environment variables on top of cfg dict (in-place)."""
    _BOOL_KEYS = {"cover_generation_enabled"}
    _INT_KEYS = {"payload_preview_chars", "port"}
    _FLOAT_KEYS = {"poll_interval"}

    legacy_cover_flag = os.getenv("ENABLE_COVER_GENERATION")
    if legacy_cover_flag is not None:
        cfg["cover_generation_enabled"] = _parse_bool(legacy_cover_flag)

    for env_key, env_val in os.environ.items():
        if not env_key.startswith("BOOKFLOW_") or env_key == "BOOKFLOW_CONFIG":
            continue
        cfg_key = env_key[len("BOOKFLOW_"):].lower()
        if cfg_key in _BOOL_KEYS:
            cfg[cfg_key] = _parse_bool(env_val)
        elif cfg_key in _INT_KEYS:
            try:
                cfg[cfg_key] = int(env_val)
            except ValueError:
                logger.warning(f"Ignoring non-integer {env_key}={env_val!r}")
        elif cfg_key in _FLOAT_KEYS:
            try:
                cfg[cfg_key] = float(env_val)
            except ValueError:
                logger.warning(f"Ignoring non-numeric {env_key}={env_val!r}")
        else:
            cfg[cfg_key] = env_val
