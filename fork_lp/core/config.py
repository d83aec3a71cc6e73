import json
import os
from pathlib import Path
from typing import Any

_CONFIG_ENV_KEYS = ("FORK_LP_CONFIG_PATH", "FORK_LP_CONFIG")
_DEFAULT_CONFIG_FILENAME = "config.json"
_FORK_RPC_ENV_KEY = "FORK_LP_FORK_RPC"


def _find_project_root(start: Path) -> Path | None:
    cur = start.resolve()
    for parent in [cur, *cur.parents]:
        if (parent / "pyproject.toml").exists():
            return parent
    return None


def _project_root() -> Path | None:
    return _find_project_root(Path.cwd()) or _find_project_root(Path(__file__).parent)


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path).expanduser()

    env_path = next(
        (os.getenv(k, "").strip() for k in _CONFIG_ENV_KEYS if os.getenv(k)), ""
    )
    if env_path:
        p = Path(env_path).expanduser()
        if p.is_absolute():
            return p
        root = _project_root()
        return (root / p) if root else p

    root = _project_root()
    return (root / _DEFAULT_CONFIG_FILENAME) if root else Path(_DEFAULT_CONFIG_FILENAME)


def load_config_json(
    path: str | Path | None = None, *, require_exists: bool = False
) -> dict[str, Any]:
    cfg_path = resolve_config_path(path)
    if not cfg_path.exists():
        if require_exists:
            raise FileNotFoundError(f"Config file not found: {cfg_path}")
        return {}
    try:
        return json.loads(cfg_path.read_text())
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in config file {cfg_path}: {exc}") from exc


CONFIG: dict[str, Any] = load_config_json()


def set_config(config: dict[str, Any]) -> None:
    """Replace the global CONFIG dict in-place.

    This allows code that imported CONFIG at module import time to see updates.
    """
    CONFIG.clear()
    CONFIG.update(config)


def load_config(
    path: str | Path | None = None, *, require_exists: bool = False
) -> None:
    """Load config from disk into the global CONFIG dict."""
    set_config(load_config_json(path, require_exists=require_exists))


def get_rpc_urls() -> dict[str, Any]:
    return CONFIG.get("strategy", {}).get("rpc_urls", {})


def get_fork_rpc_url() -> str | None:
    fork = CONFIG.get("fork", {})
    rpc_url = fork.get("rpc_url")
    if rpc_url:
        return str(rpc_url).strip()
    env_rpc = os.environ.get(_FORK_RPC_ENV_KEY, "").strip()
    return env_rpc or None


def get_provision_config() -> dict[str, Any]:
    return dict(CONFIG.get("provision", {}))


def get_recipient_private_key() -> str | None:
    recipient = CONFIG.get("recipient", {})
    value = recipient.get("private_key")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None
