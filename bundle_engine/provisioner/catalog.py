"""Provisioner for file-based catalogs.

A file-based catalog is a tree of JSON and YAML documents. Every document
declares a `schema`; the schemas understood here describe packages, the
channels of a package and the bundles that the channels reference:

```yaml
schema: olm.package
name: foo
defaultChannel: stable
---
schema: olm.channel
package: foo
name: stable
entries:
  - name: foo.v0.1.0
---
schema: olm.bundle
package: foo
name: foo.v0.1.0
image: quay.io/example/foo-bundle:v0.1.0
properties:
  - type: olm.package
    value:
      packageName: foo
      version: 0.1.0
```

Documents with any other schema are kept but not interpreted. A
`.indexignore` file excludes paths, relative to its own directory, using
shell style patterns.
"""

from dataclasses import dataclass, field
import fnmatch
import json
import logging
import posixpath
import re
from typing import Any

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import MissingField, InvalidFieldValue
import yaml

from bundle_engine.exceptions import CatalogException
from bundle_engine.fs import ROOT, BundleFS
from bundle_engine.manifest import Bundle

from .provisioner import Provisioner

__all__ = [
    "CatalogProvisioner",
    "DeclarativeConfig",
    "Model",
    "PROVISIONER_ID",
    "convert_to_model",
    "load_fs",
]

_LOGGER = logging.getLogger(__name__)

# The unique catalogd FBC provisioner ID
PROVISIONER_ID = "catalogd-operatorframework-io-fbc"

SCHEMA_PACKAGE = "olm.package"
SCHEMA_CHANNEL = "olm.channel"
SCHEMA_BUNDLE = "olm.bundle"
PROPERTY_PACKAGE = "olm.package"

INDEX_IGNORE_FILE = ".indexignore"
CATALOG_EXTENSIONS = (".json", ".yaml", ".yml")

_SEMVER = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(-[0-9A-Za-z-]+(\.[0-9A-Za-z-]+)*)?"
    r"(\+[0-9A-Za-z-]+(\.[0-9A-Za-z-]+)*)?$"
)


@dataclass
class _Base(DataClassDictMixin):
    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass
class Package(_Base):
    """An `olm.package` document."""

    name: str = ""
    default_channel: str = field(
        metadata=field_options(alias="defaultChannel"), default=""
    )
    description: str | None = None


@dataclass
class ChannelEntry(_Base):
    """A bundle in a channel and the upgrade edges into it."""

    name: str = ""
    replaces: str | None = None
    skips: list[str] | None = None
    skip_range: str | None = field(
        metadata=field_options(alias="skipRange"), default=None
    )


@dataclass
class Channel(_Base):
    """An `olm.channel` document."""

    package: str = ""
    name: str = ""
    entries: list[ChannelEntry] = field(default_factory=list)


@dataclass
class Property(_Base):
    """A typed property of a bundle."""

    type: str = ""
    value: Any = None


@dataclass
class CatalogBundle(_Base):
    """An `olm.bundle` document."""

    package: str = ""
    name: str = ""
    image: str = ""
    properties: list[Property] = field(default_factory=list)


@dataclass
class Meta:
    """A document with a schema that is not interpreted."""

    schema: str
    path: str
    blob: dict[str, Any]


@dataclass
class DeclarativeConfig:
    """All documents of a catalog, grouped by schema."""

    packages: list[Package] = field(default_factory=list)
    channels: list[Channel] = field(default_factory=list)
    bundles: list[CatalogBundle] = field(default_factory=list)
    others: list[Meta] = field(default_factory=list)

    def add(self, path: str, doc: Any) -> None:
        """Add a parsed document loaded from `path`."""
        if not isinstance(doc, dict):
            raise CatalogException(f"parse {path}: document is not an object")
        schema = doc.get("schema")
        if not schema or not isinstance(schema, str):
            raise CatalogException(f"parse {path}: schema is required")
        try:
            if schema == SCHEMA_PACKAGE:
                self.packages.append(Package.from_dict(doc))
            elif schema == SCHEMA_CHANNEL:
                self.channels.append(Channel.from_dict(doc))
            elif schema == SCHEMA_BUNDLE:
                self.bundles.append(CatalogBundle.from_dict(doc))
            else:
                self.others.append(Meta(schema=schema, path=path, blob=doc))
        except (MissingField, InvalidFieldValue, ValueError, TypeError) as err:
            raise CatalogException(f"parse {path}: invalid {schema}: {err}") from err


@dataclass
class ModelBundle:
    """A bundle that belongs to a channel."""

    name: str
    version: str
    image: str
    replaces: str | None = None
    skips: list[str] = field(default_factory=list)


@dataclass
class ModelChannel:
    """An upgrade graph of bundles."""

    name: str
    bundles: dict[str, ModelBundle] = field(default_factory=dict)

    def head(self) -> ModelBundle:
        """Return the one bundle that nothing in the channel upgrades from."""
        incoming: set[str] = set()
        for bundle in self.bundles.values():
            if bundle.replaces:
                incoming.add(bundle.replaces)
            incoming.update(bundle.skips)
        heads = [b for name, b in self.bundles.items() if name not in incoming]
        if len(heads) != 1:
            names = sorted(b.name for b in heads)
            raise CatalogException(
                f"channel {self.name!r} has {len(heads)} heads, expected exactly one: {names}"
            )
        return heads[0]

    def validate_replaces(self) -> None:
        """Check that the replaces chain from the head has no cycles."""
        head = self.head()
        seen = {head.name}
        current: ModelBundle | None = head
        while current is not None and current.replaces:
            if current.replaces in seen:
                raise CatalogException(
                    f"channel {self.name!r} has a cycle in its replaces chain at {current.replaces!r}"
                )
            seen.add(current.replaces)
            current = self.bundles.get(current.replaces)


@dataclass
class ModelPackage:
    """A package and its channels."""

    name: str
    default_channel: str
    channels: dict[str, ModelChannel] = field(default_factory=dict)


@dataclass
class Model:
    """The package, channel and bundle graph of a catalog."""

    packages: dict[str, ModelPackage] = field(default_factory=dict)


def _ignore_patterns(tree: BundleFS) -> list[tuple[str, str]]:
    """Return (directory, pattern) pairs from every ignore file in the tree."""
    patterns: list[tuple[str, str]] = []
    for path, is_dir in tree.walk():
        if is_dir or posixpath.basename(path) != INDEX_IGNORE_FILE:
            continue
        base = posixpath.dirname(path) or ROOT
        for line in tree.read_text(path).splitlines():
            line = line.strip()
            if line and not line.startswith("#"):
                patterns.append((base, line.rstrip("/")))
    return patterns


def _is_ignored(path: str, patterns: list[tuple[str, str]]) -> bool:
    for base, pattern in patterns:
        if base != ROOT:
            if not path.startswith(f"{base}/"):
                continue
            rel = path.removeprefix(f"{base}/")
        else:
            rel = path
        parts = rel.split("/")
        # A pattern matches the path itself, one of its names, or a parent directory
        candidates = ["/".join(parts[: i + 1]) for i in range(len(parts))]
        if any(fnmatch.fnmatchcase(c, pattern) for c in candidates):
            return True
        if "/" not in pattern and any(fnmatch.fnmatchcase(p, pattern) for p in parts):
            return True
    return False


def _parse_json(path: str, text: str) -> list[Any]:
    """Parse a stream of concatenated JSON documents."""
    decoder = json.JSONDecoder()
    docs = []
    pos = 0
    while True:
        while pos < len(text) and text[pos].isspace():
            pos += 1
        if pos >= len(text):
            return docs
        try:
            doc, pos = decoder.raw_decode(text, pos)
        except json.JSONDecodeError as err:
            raise CatalogException(f"parse {path}: {err}") from err
        docs.append(doc)


def _parse_yaml(path: str, text: str) -> list[Any]:
    try:
        return [doc for doc in yaml.safe_load_all(text) if doc is not None]
    except yaml.YAMLError as err:
        raise CatalogException(f"parse {path}: {err}") from err


def load_fs(tree: BundleFS) -> DeclarativeConfig:
    """Load every catalog document in the tree."""
    cfg = DeclarativeConfig()
    patterns = _ignore_patterns(tree)
    for path, is_dir in tree.walk():
        if is_dir or posixpath.basename(path) == INDEX_IGNORE_FILE:
            continue
        if _is_ignored(path, patterns):
            _LOGGER.debug("Ignoring catalog path %s", path)
            continue
        if not path.endswith(CATALOG_EXTENSIONS):
            continue
        try:
            text = tree.read_text(path)
        except UnicodeDecodeError as err:
            raise CatalogException(f"parse {path}: {err}") from err
        docs = _parse_json(path, text) if path.endswith(".json") else _parse_yaml(path, text)
        for doc in docs:
            cfg.add(path, doc)
    _LOGGER.debug(
        "Loaded catalog with %d packages, %d channels, %d bundles",
        len(cfg.packages),
        len(cfg.channels),
        len(cfg.bundles),
    )
    return cfg


def _package_property(bundle: CatalogBundle) -> tuple[str, str]:
    """Return the package name and version declared by a bundle."""
    props = [p for p in bundle.properties if p.type == PROPERTY_PACKAGE]
    if len(props) != 1:
        raise CatalogException(
            f"package {bundle.package!r}, bundle {bundle.name!r} must have exactly 1 {PROPERTY_PACKAGE!r} property, found {len(props)}"
        )
    value = props[0].value
    if not isinstance(value, dict):
        raise CatalogException(
            f"package {bundle.package!r}, bundle {bundle.name!r} has an invalid {PROPERTY_PACKAGE!r} property"
        )
    return str(value.get("packageName", "")), str(value.get("version", ""))


def convert_to_model(cfg: DeclarativeConfig) -> Model:
    """Build the package graph of a catalog, checking every reference.

    All problems found are reported together in one `CatalogException`.
    """
    errors: list[str] = []
    model = Model()

    for pkg in cfg.packages:
        if not pkg.name:
            errors.append("config contains package with no name")
        elif pkg.name in model.packages:
            errors.append(f"duplicate package {pkg.name!r}")
        else:
            model.packages[pkg.name] = ModelPackage(
                name=pkg.name, default_channel=pkg.default_channel
            )

    bundles: dict[tuple[str, str], CatalogBundle] = {}
    for bundle in cfg.bundles:
        if bundle.package not in model.packages:
            errors.append(
                f"unknown package {bundle.package!r} for bundle {bundle.name!r}"
            )
            continue
        if not bundle.name:
            errors.append(f"package {bundle.package!r} has a bundle with no name")
            continue
        key = (bundle.package, bundle.name)
        if key in bundles:
            errors.append(
                f"package {bundle.package!r} has duplicate bundle {bundle.name!r}"
            )
            continue
        bundles[key] = bundle

    versions: dict[tuple[str, str], str] = {}
    for key, bundle in bundles.items():
        try:
            package_name, version = _package_property(bundle)
        except CatalogException as err:
            errors.append(str(err))
            continue
        if package_name != bundle.package:
            errors.append(
                f"package {bundle.package!r}, bundle {bundle.name!r} has {PROPERTY_PACKAGE!r} property for package {package_name!r}"
            )
            continue
        if not _SEMVER.match(version):
            errors.append(
                f"package {bundle.package!r}, bundle {bundle.name!r} has invalid version {version!r}"
            )
            continue
        versions[key] = version

    in_channel: set[tuple[str, str]] = set()
    for channel in cfg.channels:
        if (pkg := model.packages.get(channel.package)) is None:
            errors.append(
                f"unknown package {channel.package!r} for channel {channel.name!r}"
            )
            continue
        if not channel.name:
            errors.append(f"package {channel.package!r} has a channel with no name")
            continue
        if channel.name in pkg.channels:
            errors.append(
                f"package {pkg.name!r} has duplicate channel {channel.name!r}"
            )
            continue
        model_channel = ModelChannel(name=channel.name)
        for entry in channel.entries:
            key = (pkg.name, entry.name)
            if entry.name in model_channel.bundles:
                errors.append(
                    f"package {pkg.name!r}, channel {channel.name!r} has duplicate entry {entry.name!r}"
                )
                continue
            if key not in bundles:
                errors.append(
                    f"package {pkg.name!r}, channel {channel.name!r} has entry {entry.name!r} for unknown bundle"
                )
                continue
            if entry.replaces == entry.name or entry.name in (entry.skips or []):
                errors.append(
                    f"package {pkg.name!r}, channel {channel.name!r}, entry {entry.name!r} cannot replace or skip itself"
                )
                continue
            in_channel.add(key)
            if key not in versions:
                continue
            model_channel.bundles[entry.name] = ModelBundle(
                name=entry.name,
                version=versions[key],
                image=bundles[key].image,
                replaces=entry.replaces,
                skips=list(entry.skips or []),
            )
        pkg.channels[channel.name] = model_channel

    for key in bundles:
        if key not in in_channel:
            errors.append(
                f"package {key[0]!r}, bundle {key[1]!r} not found in any channel entries"
            )

    for pkg in model.packages.values():
        if not pkg.channels:
            errors.append(f"package {pkg.name!r} has no channels")
            continue
        if not pkg.default_channel:
            errors.append(f"package {pkg.name!r} has no default channel")
        elif pkg.default_channel not in pkg.channels:
            errors.append(
                f"package {pkg.name!r} default channel {pkg.default_channel!r} not found in channels list"
            )
        for model_channel in pkg.channels.values():
            if not model_channel.bundles:
                errors.append(
                    f"package {pkg.name!r}, channel {model_channel.name!r} has no bundles"
                )
                continue
            try:
                model_channel.validate_replaces()
            except CatalogException as err:
                errors.append(f"package {pkg.name!r}: {err}")

    if errors:
        raise CatalogException("invalid catalog:\n" + "\n".join(errors))
    return model


class CatalogProvisioner(Provisioner):
    """Catalog bundles are validated and stored unchanged."""

    provisioner_id = PROVISIONER_ID

    async def handle_bundle(self, tree: BundleFS, bundle: Bundle) -> BundleFS:
        model = convert_to_model(load_fs(tree))
        _LOGGER.debug(
            "Bundle %s contains a catalog of %d packages", bundle.name, len(model.packages)
        )
        return tree
