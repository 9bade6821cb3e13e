"""Load SyncConfig from tandem.yaml / tandem.toml if present.

Merges file config with CLI kwargs. CLI overrides file.
"""

from __future__ import annotations

import dataclasses
from pathlib import Path

from tandem._errors import ConfigError
from tandem.config import SyncConfig

_KNOWN_KEYS = frozenset(
    f.name for f in dataclasses.fields(SyncConfig) if f.name != "root"
)


def load_config(root: Path, **overrides: object) -> SyncConfig:
    """Load SyncConfig from root, optionally merging tandem.yaml.

    Looks for tandem.yaml, tandem.yml, or tandem.toml in root. If found,
    loads and merges with overrides. Overrides set to ``None`` are ignored
    so argparse defaults do not mask file values.

    Raises:
        ConfigError: If the file is malformed or names an unknown key.

    """
    file_config = _read_tandem_config(root)
    merged = {**file_config, **{k: v for k, v in overrides.items() if v is not None}}
    unknown = sorted(set(merged) - _KNOWN_KEYS)
    if unknown:
        msg = f"Unknown config key(s): {', '.join(unknown)}"
        raise ConfigError(msg)
    try:
        return SyncConfig(root=root, **merged)  # type: ignore[arg-type]
    except TypeError as exc:
        raise ConfigError(str(exc)) from exc


def _read_tandem_config(root: Path) -> dict[str, object]:
    """Read tandem config from yaml/toml if present. Returns empty dict otherwise."""
    for name in ("tandem.yaml", "tandem.yml"):
        path = root / name
        if path.is_file():
            return _parse_yaml(path)
    toml_path = root / "tandem.toml"
    if toml_path.is_file():
        return _parse_toml(toml_path)
    return {}


def _parse_yaml(path: Path) -> dict[str, object]:
    import yaml

    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:
        msg = f"{path.name}: {exc}"
        raise ConfigError(msg) from exc
    if not isinstance(data, dict):
        msg = f"{path.name}: expected a mapping at the top level"
        raise ConfigError(msg)
    return _flatten_tandem_section(data)


def _parse_toml(path: Path) -> dict[str, object]:
    import tomllib

    try:
        data = tomllib.loads(path.read_text())
    except tomllib.TOMLDecodeError as exc:
        msg = f"{path.name}: {exc}"
        raise ConfigError(msg) from exc
    return _flatten_tandem_section(data)


def _flatten_tandem_section(data: dict[str, object]) -> dict[str, object]:
    """Extract tandem.* keys and known top-level keys into one mapping."""
    result: dict[str, object] = {}
    for k, v in data.items():
        if k in _KNOWN_KEYS:
            result[k] = v
    section = data.get("tandem")
    if isinstance(section, dict):
        result.update(section)
    return result
