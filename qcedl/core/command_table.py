"""Loading and validation of YAML command tables.

A command table maps attribute kinds to the numeric execute command codes a
firmware family understands. The packaged table covers mask-ROM firmware; a
user table at ``$XDG_CONFIG_HOME/qcedl/commands.yaml`` (or an explicit path)
overrides individual entries.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from qcedl.core.errors import CommandTableLoadError, CommandTableValidationError, UnsupportedAttributeError
from qcedl.core.model import AttributeKind, CommandEntry, PayloadFormat

LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise CommandTableValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class CommandTable:
    id: str
    name: str
    entries: dict[AttributeKind, CommandEntry]

    def entry(self, kind: AttributeKind) -> CommandEntry:
        entry = self.entries.get(kind)
        if entry is None:
            raise UnsupportedAttributeError(
                kind.value,
                f"Command table '{self.id}' has no code for {kind.value}",
            )
        return entry


@dataclass(frozen=True)
class LoadedCommandTable:
    table: CommandTable
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("qcedl.schemas").joinpath("command_table.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def user_table_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "qcedl/commands.yaml"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CommandTableLoadError(f"Could not read command table {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise CommandTableValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise CommandTableValidationError(f"Command table {path} must contain a mapping at root")
    return loaded


def _build_table(doc: dict[str, Any], source: Path | Traversable) -> CommandTable:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise CommandTableValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    entries: dict[AttributeKind, CommandEntry] = {}
    for kind_name, entry_spec in doc["commands"].items():
        kind = AttributeKind(kind_name)
        payload_format = PayloadFormat(entry_spec["format"])
        width = entry_spec.get("width")
        if payload_format is PayloadFormat.UINT and width is None:
            raise CommandTableValidationError(f"{doc['id']}.{kind_name}: uint attributes need a width")
        if payload_format is not PayloadFormat.UINT and width is not None:
            raise CommandTableValidationError(f"{doc['id']}.{kind_name}: width only applies to uint attributes")
        entries[kind] = CommandEntry(
            kind=kind,
            code=int(entry_spec["code"]),
            format=payload_format,
            width=width,
            min_version=int(entry_spec.get("min_version", 1)),
            description=entry_spec.get("description", ""),
        )

    _check_unique_codes(entries, source)
    return CommandTable(id=doc["id"], name=doc["name"], entries=entries)


def _check_unique_codes(entries: dict[AttributeKind, CommandEntry], source: Path | Traversable) -> None:
    seen: dict[int, AttributeKind] = {}
    for kind, entry in entries.items():
        other = seen.get(entry.code)
        if other is not None:
            raise CommandTableValidationError(
                f"Command code 0x{entry.code:02x} used for both {other.value} and {kind.value} in {source}"
            )
        seen[entry.code] = kind


def load_packaged_table() -> CommandTable:
    path = resources.files("qcedl.tables").joinpath("sahara.yaml")
    return _build_table(_read_yaml(path), path)


def load_command_table(path: Path | None = None) -> LoadedCommandTable:
    """Load the packaged table, overlaid by ``path`` or the user table."""
    table = load_packaged_table()
    warnings: list[str] = []

    override_path = path if path is not None else user_table_path()
    if path is None and not override_path.is_file():
        return LoadedCommandTable(table=table, warnings=())

    override = _build_table(_read_yaml(override_path), override_path)
    entries = dict(table.entries)
    for kind, entry in override.entries.items():
        if kind in entries and entries[kind] != entry:
            warning = f"Command table '{override.id}' overrides {kind.value}"
            LOGGER.warning(warning)
            warnings.append(warning)
        entries[kind] = entry
    _check_unique_codes(entries, override_path)

    merged = CommandTable(id=override.id, name=override.name, entries=entries)
    return LoadedCommandTable(table=merged, warnings=tuple(warnings))
