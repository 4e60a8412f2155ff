"""Migrate KHR_technique_webgl documents to KHR_techniques_webgl.

Some exporters wrote glTF 2.0 files against a draft of the techniques
extension: the extension is named KHR_technique_webgl, programs, shaders
and techniques live at the document root, materials carry top-level
``technique``/``values`` members keyed by parameter name, and technique
attributes/uniforms point at a separate ``parameters`` table.

The migration moves all of that under ``extensions.KHR_techniques_webgl``:

- programs, shaders and techniques go to the document extension
- material technique/values go to the material extension, with values
  re-keyed from parameter name to uniform name
- technique attributes/uniforms are replaced with their parameter
  definitions and the parameters table is dropped

Lookups that cannot be resolved leave the data untouched and are reported
as MigrationDiagnostic entries.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .glb_types import MigrationDiagnostic

logger = logging.getLogger(__name__)

DEPRECATED_EXTENSION = "KHR_technique_webgl"
MODERN_EXTENSION = "KHR_techniques_webgl"

# Members moved from the document root into the document extension
MOVED_MEMBERS = ("programs", "shaders", "techniques")

SAMPLER_2D = 35678

# Rule actions
RENAME = "rename"
SYNTHETIC_UNIFORM = "synthetic_uniform"


@dataclass(frozen=True)
class ValueKeyRule:
    """Rewrite applied to a material values key before uniform lookup.

    RENAME moves the value to ``target``. SYNTHETIC_UNIFORM moves the value
    to ``target`` and declares ``target`` on the technique as a uniform of
    ``uniform_type``.
    """

    match_key: str
    action: str
    target: str
    uniform_type: Optional[int] = None


VALUE_KEY_RULES = (
    ValueKeyRule("transparancy", RENAME, "transparency"),
    ValueKeyRule("EMISSION", SYNTHETIC_UNIFORM, "u_emission", SAMPLER_2D),
)


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _ensure_dict(owner: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = owner.get(key)
    if not isinstance(value, dict):
        value = {}
        owner[key] = value
    return value


def _replace_item(items: Any, old: str, new: str) -> bool:
    """Replace the first occurrence of old in a list, keeping its position."""
    if not isinstance(items, list) or old not in items:
        return False
    items[items.index(old)] = new
    return True


class LegacyTechniqueMigrator:
    """Rewrites a parsed glTF document from the legacy technique extension."""

    def __init__(self, rules: Optional[Sequence[ValueKeyRule]] = None):
        self.rules = tuple(VALUE_KEY_RULES if rules is None else rules)
        self._rules_by_key = {rule.match_key: rule for rule in self.rules}
        self._synthetic_uniforms = {
            rule.target for rule in self.rules if rule.action == SYNTHETIC_UNIFORM
        }

    @staticmethod
    def needs_migration(gltf: Dict[str, Any]) -> bool:
        extensions_used = gltf.get("extensionsUsed")
        return isinstance(extensions_used, list) and DEPRECATED_EXTENSION in extensions_used

    def migrate(self, gltf: Dict[str, Any]) -> List[MigrationDiagnostic]:
        """Migrate the document in place.

        Args:
            gltf: Parsed glTF JSON

        Returns:
            Diagnostics for references that could not be resolved. Empty when
            the document does not use the legacy extension.
        """
        if not self.needs_migration(gltf):
            return []

        diagnostics: List[MigrationDiagnostic] = []

        # extensionsRequired is renamed only where it actually lists the name
        _replace_item(gltf["extensionsUsed"], DEPRECATED_EXTENSION, MODERN_EXTENSION)
        _replace_item(gltf.get("extensionsRequired"), DEPRECATED_EXTENSION, MODERN_EXTENSION)

        extension = _ensure_dict(_ensure_dict(gltf, "extensions"), MODERN_EXTENSION)
        for member in MOVED_MEMBERS:
            if member in gltf:
                extension[member] = gltf[member]
        techniques = _as_list(extension.get("techniques"))

        for index, material in enumerate(_as_list(gltf.get("materials"))):
            if isinstance(material, dict):
                self._migrate_material(material, index, techniques, diagnostics)

        for index, technique in enumerate(techniques):
            if isinstance(technique, dict):
                self._migrate_technique(technique, index, diagnostics)

        for member in MOVED_MEMBERS:
            gltf.pop(member, None)

        for diagnostic in diagnostics:
            logger.debug("Unresolved %s: %s", diagnostic.kind, diagnostic)

        return diagnostics

    def _migrate_material(
        self,
        material: Dict[str, Any],
        index: int,
        techniques: List[Any],
        diagnostics: List[MigrationDiagnostic],
    ):
        path = f"/materials/{index}"
        technique_index = material.pop("technique", None)
        values = material.pop("values", None)
        if not isinstance(values, dict):
            values = {}

        material_extension: Dict[str, Any] = {"values": values}
        if technique_index is not None:
            material_extension["technique"] = technique_index
        _ensure_dict(material, "extensions")[MODERN_EXTENSION] = material_extension

        technique = None
        if (
            isinstance(technique_index, int)
            and not isinstance(technique_index, bool)
            and 0 <= technique_index < len(techniques)
            and isinstance(techniques[technique_index], dict)
        ):
            technique = techniques[technique_index]
        else:
            diagnostics.append(
                MigrationDiagnostic(
                    kind="missing_technique",
                    path=f"{path}/technique",
                    key=str(technique_index),
                    message=(
                        "material has no technique"
                        if technique_index is None
                        else f"technique {technique_index!r} does not exist"
                    ),
                )
            )

        uniforms = {}
        if technique is not None and isinstance(technique.get("uniforms"), dict):
            uniforms = technique["uniforms"]

        # Every key is resolved from the original values, then all are moved at once
        targets = {}
        for key in values:
            rule = self._rules_by_key.get(key)
            if rule is not None:
                targets[key] = rule.target
                continue

            uniform_name = next(
                (name for name, parameter in uniforms.items() if parameter == key),
                None,
            )
            if uniform_name is not None:
                targets[key] = uniform_name
                continue

            targets[key] = key
            if key not in uniforms:
                diagnostics.append(
                    MigrationDiagnostic(
                        kind="unresolved_value",
                        path=f"{path}/values/{key}",
                        key=key,
                        message=f"no uniform references parameter '{key}'",
                    )
                )

        self._keep_conflicting_keys(targets, path, diagnostics)

        for key, target in targets.items():
            rule = self._rules_by_key.get(key)
            if (
                rule is not None
                and rule.action == SYNTHETIC_UNIFORM
                and target == rule.target
                and technique is not None
            ):
                uniforms = _ensure_dict(technique, "uniforms")
                if not isinstance(uniforms.get(rule.target), dict):
                    uniforms[rule.target] = {"type": rule.uniform_type}

        resolved = {targets[key]: value for key, value in values.items()}
        values.clear()
        values.update(resolved)

    @staticmethod
    def _keep_conflicting_keys(
        targets: Dict[str, str],
        path: str,
        diagnostics: List[MigrationDiagnostic],
    ):
        """Leave keys in place whose new name is claimed by another value.

        A key that keeps its name owns it; otherwise the first key renamed to
        a name owns it. Reverting a key claims its original name, so repeat
        until every target has one owner.
        """
        while True:
            owners = {target: key for key, target in targets.items() if target == key}
            for key, target in targets.items():
                owners.setdefault(target, key)

            conflicting = [key for key, target in targets.items() if owners[target] != key]
            if not conflicting:
                return

            for key in conflicting:
                diagnostics.append(
                    MigrationDiagnostic(
                        kind="conflicting_value",
                        path=f"{path}/values/{key}",
                        key=key,
                        message=f"'{targets[key]}' is already taken, '{key}' left in place",
                    )
                )
                targets[key] = key

    def _migrate_technique(
        self,
        technique: Dict[str, Any],
        index: int,
        diagnostics: List[MigrationDiagnostic],
    ):
        path = f"/extensions/{MODERN_EXTENSION}/techniques/{index}"
        parameters = technique.pop("parameters", None)
        if not isinstance(parameters, dict):
            parameters = {}

        for member, kind in (("attributes", "unresolved_attribute"), ("uniforms", "unresolved_uniform")):
            mapping = technique.get(member)
            if not isinstance(mapping, dict):
                continue

            for name, parameter_name in list(mapping.items()):
                if member == "uniforms" and name in self._synthetic_uniforms:
                    continue

                definition = None
                if isinstance(parameter_name, str):
                    definition = parameters.get(parameter_name)
                if definition is None:
                    diagnostics.append(
                        MigrationDiagnostic(
                            kind=kind,
                            path=f"{path}/{member}/{name}",
                            key=name,
                            message=f"parameter {parameter_name!r} is not defined",
                        )
                    )
                    continue
                mapping[name] = definition


def migrate_techniques(gltf: Dict[str, Any]) -> List[MigrationDiagnostic]:
    """Migrate a document with the default rule table."""
    return LegacyTechniqueMigrator().migrate(gltf)
