"""Device profile loading and validation for YAML-based nevermorectl profiles."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from nevermorectl.core.errors import DeviceSelectionError, ProfileLoadError, ProfileValidationError
from nevermorectl.core.model import DeviceProfile, LabelRule, MatchRules, ServiceKind
from nevermorectl.core.uuids import expand_uuid

DEFAULT_PROFILE_ID = "nevermore"
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ProfileValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedProfiles:
    profiles: dict[str, DeviceProfile]
    warnings: tuple[str, ...]

    def get(self, profile_id: str | None = None) -> DeviceProfile:
        wanted = profile_id or DEFAULT_PROFILE_ID
        profile = self.profiles.get(wanted)
        if profile is None:
            available = ", ".join(sorted(self.profiles)) or "<none>"
            raise DeviceSelectionError(f"Unknown profile '{wanted}'. Available: {available}")
        return profile


@lru_cache(maxsize=1)
def _load_schema_validator() -> Any:
    schema_text = resources.files("nevermorectl.schemas").joinpath("profile.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _profile_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "nevermorectl/profiles", xdg_data / "nevermorectl/profiles"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ProfileLoadError(f"Could not read profile file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ProfileValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ProfileValidationError(f"Profile file {path} must contain a mapping at root")
    return loaded


def _normalize_uuid(value: str, *, context: str) -> str:
    try:
        return expand_uuid(value)
    except ValueError as exc:
        raise ProfileValidationError(
            f"{context} must be a 16-bit, 32-bit, or 128-bit UUID string"
        ) from exc


def _build_profile(doc: dict[str, Any], source: Path | Traversable) -> DeviceProfile:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ProfileValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    profile_id = doc["id"]
    services = {
        ServiceKind(kind): _normalize_uuid(uuid, context=f"{profile_id}.services.{kind}")
        for kind, uuid in doc["services"].items()
    }
    characteristics = {
        key: _normalize_uuid(uuid, context=f"{profile_id}.characteristics.{key}")
        for key, uuid in doc["characteristics"].items()
    }
    labels = {
        key: LabelRule(include=rule["include"], exclude=rule.get("exclude"))
        for key, rule in doc.get("labels", {}).items()
    }
    transport = doc.get("transport", {})

    return DeviceProfile(
        id=profile_id,
        name=doc["name"],
        match=MatchRules(name_prefix=doc["match"]["name_prefix"]),
        services=services,
        characteristics=characteristics,
        labels=labels,
        scan_timeout_s=float(transport.get("scan_timeout_s", 10.0)),
        connect_timeout_s=float(transport.get("connect_timeout_s", 10.0)),
    )


def _iter_packaged_profile_paths() -> list[Traversable]:
    profile_root = resources.files("nevermorectl.profiles")
    return [item for item in profile_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_profile_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _profile_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_profiles() -> LoadedProfiles:
    profiles: dict[str, DeviceProfile] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_profile_paths(), key=lambda p: p.name):
        profile = _build_profile(_read_yaml(path), path)
        profiles[profile.id] = profile

    for path in _iter_user_profile_paths():
        profile = _build_profile(_read_yaml(path), path)
        if profile.id in profiles:
            warning = f"User profile '{profile.id}' overrides packaged profile"
            LOGGER.warning(warning)
            warnings.append(warning)
        profiles[profile.id] = profile

    return LoadedProfiles(profiles=profiles, warnings=tuple(warnings))
