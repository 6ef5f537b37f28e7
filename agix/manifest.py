"""Agentfile manifests: the project manifest and the package manifest."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import tomli_w

from agix.sources.base import AgixError, Source
from agix.sources.registry import parse_source

KEY_AGIX = "agix"
KEY_DEPENDENCIES = "dependencies"
KEY_HOOKS = "hooks"
KEY_SOURCE = "source"
KEY_VERSION = "version"
KEY_EXCLUDE = "exclude"
RESERVED_TOP_LEVEL_KEYS = frozenset({KEY_AGIX, KEY_DEPENDENCIES, KEY_HOOKS})

_DEPENDENCY_KEYS = (KEY_SOURCE, KEY_VERSION, KEY_EXCLUDE)


class ManifestError(AgixError):
    """An Agentfile could not be read or has an invalid shape."""


def _expect_str(value: Any, where: str) -> str:
    if not isinstance(value, str):
        raise ManifestError(f"{where}: expected a string, got {type(value).__name__}")
    return value


def _optional_str(table: dict[str, Any], key: str, where: str) -> str | None:
    if key not in table:
        return None
    return _expect_str(table[key], f"{where}.{key}")


def _expect_str_list(value: Any, where: str) -> list[str]:
    if not isinstance(value, list):
        raise ManifestError(f"{where}: expected an array of strings")
    return [_expect_str(item, where) for item in value]


def _expect_table(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ManifestError(f"{where}: expected a table, got {type(value).__name__}")
    return value


@dataclass
class AgixSection:
    """The ``[agix]`` section shared by project and package manifests."""

    cli: list[str] = field(default_factory=list)
    name: str | None = None
    version: str | None = None
    description: str | None = None


def _agix_from_value(value: Any) -> AgixSection:
    table = _expect_table(value, KEY_AGIX)
    cli = _expect_str_list(table["cli"], "agix.cli") if "cli" in table else []
    return AgixSection(
        cli=cli,
        name=_optional_str(table, "name", KEY_AGIX),
        version=_optional_str(table, "version", KEY_AGIX),
        description=_optional_str(table, "description", KEY_AGIX),
    )


def _agix_to_value(section: AgixSection) -> dict[str, Any]:
    out: dict[str, Any] = {"cli": list(section.cli)}
    for key in ("name", "version", "description"):
        value = getattr(section, key)
        if value is not None:
            out[key] = value
    return out


@dataclass
class Dependency:
    """One dependency entry: a source plus optional version and exclusions."""

    source: Source
    version: str | None = None
    exclude: list[str] | None = None

    @classmethod
    def from_source_str(cls, text: str) -> Dependency:
        """Build a dependency from a ``<scheme>:<value>`` string."""
        return cls(source=parse_source(text))

    @classmethod
    def from_toml_value(cls, value: Any) -> Dependency:
        """Read either the bare-string form or the table form."""
        if isinstance(value, str):
            return cls(source=cls._parse(value))
        if not isinstance(value, dict):
            raise ManifestError("expected a string source or a table with a `source` key")
        for key in value:
            if key not in _DEPENDENCY_KEYS:
                expected = ", ".join(f"`{k}`" for k in _DEPENDENCY_KEYS)
                raise ManifestError(f"unknown field `{key}`, expected one of {expected}")
        if KEY_SOURCE not in value:
            raise ManifestError(f"missing field `{KEY_SOURCE}`")
        source = cls._parse(_expect_str(value[KEY_SOURCE], KEY_SOURCE))
        version = _optional_str(value, KEY_VERSION, "dependency")
        exclude = (
            _expect_str_list(value[KEY_EXCLUDE], KEY_EXCLUDE)
            if KEY_EXCLUDE in value
            else None
        )
        return cls(source=source, version=version, exclude=exclude)

    @staticmethod
    def _parse(text: str) -> Source:
        try:
            return parse_source(text)
        except AgixError as exc:
            raise ManifestError(str(exc)) from exc

    def to_toml_value(self) -> str | dict[str, Any]:
        """A bare string when only the source is set, otherwise a table."""
        if self.version is None and self.exclude is None:
            return self.source.canonical()
        out: dict[str, Any] = {KEY_SOURCE: self.source.canonical()}
        if self.version is not None:
            out[KEY_VERSION] = self.version
        if self.exclude is not None:
            out[KEY_EXCLUDE] = list(self.exclude)
        return out


@dataclass
class Hooks:
    """Package lifecycle hook scripts."""

    post_install: str | None = None
    pre_uninstall: str | None = None


def _hooks_from_value(value: Any) -> Hooks:
    table = _expect_table(value, KEY_HOOKS)
    return Hooks(
        post_install=_optional_str(table, "post-install", KEY_HOOKS),
        pre_uninstall=_optional_str(table, "pre-uninstall", KEY_HOOKS),
    )


def _deps_from_value(value: Any, where: str) -> dict[str, Dependency]:
    table = _expect_table(value, where)
    deps: dict[str, Dependency] = {}
    for name, raw in table.items():
        try:
            deps[name] = Dependency.from_toml_value(raw)
        except ManifestError as exc:
            raise ManifestError(f"{where}.{name}: {exc}") from exc
    return deps


def _deps_to_value(deps: dict[str, Dependency]) -> dict[str, Any]:
    return {name: dep.to_toml_value() for name, dep in deps.items()}


def _load_document(text: str) -> dict[str, Any]:
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ManifestError(f"TOML parse error: {exc}") from exc


def _parse_common(
    doc: dict[str, Any],
) -> tuple[AgixSection, dict[str, Dependency], dict[str, dict[str, Dependency]]]:
    if KEY_AGIX not in doc:
        raise ManifestError(f"missing field `{KEY_AGIX}`")
    agix = _agix_from_value(doc[KEY_AGIX])
    dependencies = (
        _deps_from_value(doc[KEY_DEPENDENCIES], KEY_DEPENDENCIES)
        if KEY_DEPENDENCIES in doc
        else {}
    )
    cli_dependencies: dict[str, dict[str, Dependency]] = {}
    for key, value in doc.items():
        if key in RESERVED_TOP_LEVEL_KEYS:
            continue
        if isinstance(value, dict) and KEY_DEPENDENCIES in value:
            cli_dependencies[key] = _deps_from_value(
                value[KEY_DEPENDENCIES], f"{key}.{KEY_DEPENDENCIES}"
            )
    return agix, dependencies, cli_dependencies


@dataclass
class ProjectManifest:
    """The Agentfile at the root of a project."""

    agix: AgixSection
    dependencies: dict[str, Dependency] = field(default_factory=dict)
    cli_dependencies: dict[str, dict[str, Dependency]] = field(default_factory=dict)

    @classmethod
    def from_toml_string(cls, text: str) -> ProjectManifest:
        """Parse a project manifest from TOML text."""
        agix, dependencies, cli_dependencies = _parse_common(_load_document(text))
        return cls(agix=agix, dependencies=dependencies, cli_dependencies=cli_dependencies)

    @classmethod
    def from_file(cls, path: Path | str) -> ProjectManifest:
        """Read a project manifest from disk."""
        return cls.from_toml_string(Path(path).read_text(encoding="utf-8"))

    def to_toml_string(self) -> str:
        """Serialise to the canonical Agentfile layout, which parses back equal."""
        root: dict[str, Any] = {KEY_AGIX: _agix_to_value(self.agix)}
        if self.dependencies:
            root[KEY_DEPENDENCIES] = _deps_to_value(self.dependencies)
        for cli, deps in self.cli_dependencies.items():
            if deps:
                root[cli] = {KEY_DEPENDENCIES: _deps_to_value(deps)}
        return tomli_w.dumps(root)

    def to_file(self, path: Path | str) -> None:
        """Write the canonical Agentfile text to ``path``."""
        Path(path).write_text(self.to_toml_string(), encoding="utf-8")

    @classmethod
    def empty(cls, cli: list[str]) -> ProjectManifest:
        """A minimal manifest for a new project."""
        return cls(agix=AgixSection(cli=list(cli)))

    def single_dep_scoped(
        self, name: str, dep: Dependency, cli_filter: list[str]
    ) -> ProjectManifest:
        """A manifest with this ``[agix]`` section and only the one dependency.

        With an empty ``cli_filter`` the dependency is shared; otherwise it
        is placed under each listed CLI's section.
        """
        dependencies: dict[str, Dependency] = {}
        cli_dependencies: dict[str, dict[str, Dependency]] = {}
        if not cli_filter:
            dependencies[name] = dep
        else:
            for cli in cli_filter:
                cli_dependencies.setdefault(cli, {})[name] = replace(dep)
        return ProjectManifest(
            agix=replace(self.agix, cli=list(self.agix.cli)),
            dependencies=dependencies,
            cli_dependencies=cli_dependencies,
        )


@dataclass
class PackageManifest:
    """The Agentfile at the root of a package."""

    agix: AgixSection
    hooks: Hooks | None = None
    dependencies: dict[str, Dependency] = field(default_factory=dict)
    cli_dependencies: dict[str, dict[str, Dependency]] = field(default_factory=dict)

    @classmethod
    def from_toml_string(cls, text: str) -> PackageManifest:
        """Parse a package manifest from TOML text."""
        doc = _load_document(text)
        agix, dependencies, cli_dependencies = _parse_common(doc)
        hooks = _hooks_from_value(doc[KEY_HOOKS]) if KEY_HOOKS in doc else None
        return cls(
            agix=agix,
            hooks=hooks,
            dependencies=dependencies,
            cli_dependencies=cli_dependencies,
        )

    @classmethod
    def from_file(cls, path: Path | str) -> PackageManifest | None:
        """Read a package manifest, or ``None`` when the file does not exist."""
        try:
            text = Path(path).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        return cls.from_toml_string(text)