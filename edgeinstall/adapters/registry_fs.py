"""
Loads the declarative artifact registry from a JSON file on disk.
"""
import json
import string
from pathlib import Path
from typing import Any, Dict, Optional

from edgeinstall.internal.constants import REGISTRY_SCHEMA_VERSION
from edgeinstall.kernel.artifacts import ArtifactFormat
from edgeinstall.kernel.errors import EdgeInstallError
from edgeinstall.kernel.resolver import LocationTemplate, Registry, RegistryEntry, VerifySpec

_PLACEHOLDERS = {"python_tag", "toolkit_version", "cpu_arch", "os_family"}


class RegistryError(EdgeInstallError):
    pass


def _check_template(name: str, uri: str) -> None:
    for _, field_name, _, _ in string.Formatter().parse(uri):
        if field_name is not None and field_name not in _PLACEHOLDERS:
            raise RegistryError(f"Registry entry '{name}' uses unknown placeholder '{{{field_name}}}' in {uri}")


def _parse_location(name: str, raw: Any) -> LocationTemplate:
    if isinstance(raw, str):
        raw = {"uri": raw}
    if not isinstance(raw, dict) or not raw.get("uri"):
        raise RegistryError(f"Registry entry '{name}' has a location without a uri")
    _check_template(name, raw["uri"])
    return LocationTemplate(
        uri=raw["uri"],
        version=raw.get("version"),
        sha256=raw.get("sha256"),
        label=raw.get("label", ""),
    )


def _require_object(what: str, raw: Any) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise RegistryError(f"{what} must be a JSON object, got {type(raw).__name__}")
    return raw


def _parse_accelerator(name: str, check: Any) -> Optional[str]:
    if check is None:
        return None
    if not isinstance(check, str) or not all(part.isidentifier() for part in check.split(".")):
        raise RegistryError(f"Registry entry '{name}' has an invalid accelerator check {check!r}; expected a dotted attribute path")
    return check


def _parse_entry(name: str, raw: Any) -> RegistryEntry:
    raw = _require_object(f"Registry entry '{name}'", raw)
    try:
        artifact_format = ArtifactFormat.parse(raw.get("format", "wheel"))
    except ValueError as e:
        raise RegistryError(f"Registry entry '{name}': {e}") from e

    verify = _require_object(f"Registry entry '{name}' verify block", raw.get("verify", {}))
    return RegistryEntry(
        name=name,
        package=raw.get("package", name),
        description=raw.get("description", ""),
        format=artifact_format,
        locations=tuple(_parse_location(name, loc) for loc in raw.get("locations", [])),
        version=raw.get("version"),
        published_python_tags=tuple(raw.get("published_python_tags", [])),
        prerequisites=tuple(raw.get("prerequisites", [])),
        companions=tuple(raw.get("companions", [])),
        notice=raw.get("notice"),
        destination=raw.get("destination"),
        layout=dict(raw.get("layout", {})),
        refresh_cache=bool(raw.get("refresh_cache", False)),
        verify=VerifySpec(
            module=verify.get("module"),
            accelerator=_parse_accelerator(name, verify.get("accelerator")),
            files=tuple(verify.get("files", [])),
        ),
    )


def load_registry(registry_path: Path) -> Registry:
    if not registry_path.exists():
        raise RegistryError(f"Artifact registry not found: {registry_path}")
    try:
        with open(registry_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise RegistryError(f"Artifact registry {registry_path} is not valid JSON: {e}") from e
    data = _require_object(f"Artifact registry {registry_path}", data)

    schema_version = data.get("schema_version", REGISTRY_SCHEMA_VERSION)
    if schema_version != REGISTRY_SCHEMA_VERSION:
        raise RegistryError(f"Unsupported registry schema version {schema_version} in {registry_path}")

    raw_artifacts = _require_object("Registry 'artifacts'", data.get("artifacts", {}))
    raw_components = _require_object("Registry 'components'", data.get("components", {}))
    artifacts = {str(code): _parse_entry(str(code), raw) for code, raw in raw_artifacts.items()}
    components = {name: _parse_entry(name, raw) for name, raw in raw_components.items()}

    for entry in artifacts.values():
        missing = [p for p in entry.prerequisites if p not in components]
        if missing:
            raise RegistryError(f"Registry entry '{entry.name}' needs unknown component(s): {', '.join(missing)}")

    return Registry(artifacts=artifacts, components=components)
