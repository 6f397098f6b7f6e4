"""Load Schema definitions from YAML or JSON files.

Document shape::

    definitions:            # optional, reusable nested schemas
      address:
        city: {type: string, required: true}
    fields:
      name: {type: string, required: true}
      home: {ref: address}
      tags: {type: array, items: {type: string, max_length: 20}}

JSON documents load the same way, JSON being a subset of YAML.
"""

import yaml
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

from .exceptions import ManifestLoadError, SchemaDefinitionError
from .spec import Schema


def load_schema_file(path: Union[str, Path]) -> Dict:
    """Read and parse a schema document."""
    path = Path(path)
    if not path.exists():
        raise ManifestLoadError(path.name, "File not found")
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ManifestLoadError(path.name, f"Invalid YAML: {e}")
    except OSError as e:
        raise ManifestLoadError(path.name, str(e))
    if data is None:
        raise ManifestLoadError(path.name, "Empty file")
    if not isinstance(data, dict):
        raise ManifestLoadError(path.name, "Top level must be a mapping")
    return data


def load_schema(path: Union[str, Path]) -> Schema:
    """Load a Schema from a YAML/JSON file."""
    return schema_from_dict(load_schema_file(path))


def schema_from_dict(data: Mapping[str, Any]) -> Schema:
    """Build a Schema from a parsed document with ``fields`` and optional ``definitions``."""
    if not isinstance(data, Mapping) or "fields" not in data:
        raise SchemaDefinitionError("fields", "document must contain a 'fields' mapping")
    definitions = data.get("definitions") or {}
    if not isinstance(definitions, Mapping):
        raise SchemaDefinitionError("definitions", "must be a mapping of name to fields")
    return _RefResolver(definitions).build(data["fields"], "")


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


class _RefResolver:
    """Expands ``ref`` entries into nested Schema objects, detecting cycles."""

    def __init__(self, definitions: Mapping[str, Any]):
        self.definitions = definitions
        self._resolved: Dict[str, Schema] = {}
        self._resolving: List[str] = []

    def schema_for(self, name: str, path: str) -> Schema:
        if name in self._resolved:
            return self._resolved[name]
        if name in self._resolving:
            cycle = " -> ".join(self._resolving[self._resolving.index(name):] + [name])
            raise SchemaDefinitionError(path, f"self-referential schema definition: {cycle}")
        if name not in self.definitions:
            raise SchemaDefinitionError(path, f"unknown definition '{name}'")

        self._resolving.append(name)
        try:
            schema = self.build(self.definitions[name], f"definitions.{name}")
        finally:
            self._resolving.pop()
        self._resolved[name] = schema
        return schema

    def build(self, fields: Any, path: str) -> Schema:
        if not isinstance(fields, Mapping):
            raise SchemaDefinitionError(path or "fields", "fields must be a mapping")
        return Schema({
            name: self.resolve_field(definition, _join(path, str(name)))
            for name, definition in fields.items()
        })

    def resolve_field(self, definition: Any, path: str) -> Any:
        if not isinstance(definition, Mapping):
            return definition
        definition = dict(definition)
        # YAML reads a bare `type: null` as None
        if "type" in definition and definition["type"] is None:
            definition["type"] = "null"

        if "ref" in definition:
            ref = definition.pop("ref")
            definition.setdefault("type", "object")
            definition["schema"] = self.schema_for(str(ref), path)
        else:
            for key in ("fields", "schema"):
                if isinstance(definition.get(key), Mapping):
                    definition["schema"] = self.build(definition.pop(key), path)
                    break

        if "items" in definition:
            definition["items"] = self.resolve_field(definition["items"], f"{path}[]")
        if isinstance(definition.get("variants"), list):
            definition["variants"] = [
                self.resolve_field(variant, f"{path}|{index}")
                for index, variant in enumerate(definition["variants"])
            ]
        return definition
