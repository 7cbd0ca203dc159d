"""Load and validate charts.

A chart is loaded from a gzip compressed tar stream whose single top level
directory holds the chart:

    mychart/
      Chart.yaml          # metadata, required
      values.yaml         # default values
      values.schema.json  # optional schema for the values
      templates/          # templates rendered at install time
      charts/             # subcharts, as directories or .tgz archives
      ...                 # any other files

Loading only checks that the content parses. `Chart.validate` checks the
metadata rules that make a chart installable.
"""

from collections import defaultdict
from dataclasses import dataclass, field
import io
import logging
import posixpath
import re
import tarfile
from typing import IO, Any
import zlib

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import MissingField, InvalidFieldValue
import yaml

from bundle_engine.exceptions import ChartException

__all__ = [
    "Chart",
    "Metadata",
    "load_archive",
    "load_files",
    "read_values",
]

_LOGGER = logging.getLogger(__name__)

CHART_FILE = "Chart.yaml"
VALUES_FILE = "values.yaml"
SCHEMA_FILE = "values.schema.json"
TEMPLATES_DIR = "templates"
CHARTS_DIR = "charts"

API_VERSION_V1 = "v1"
API_VERSION_V2 = "v2"
CHART_TYPES = {"", "application", "library"}

# Lenient semantic versions, e.g. 1, 1.2, v1.2.3, 1.2.3-rc.1+build.5
_SEMVER = re.compile(
    r"^v?(0|[1-9]\d*)(\.(0|[1-9]\d*))?(\.(0|[1-9]\d*))?"
    r"(-[0-9A-Za-z-]+(\.[0-9A-Za-z-]+)*)?"
    r"(\+[0-9A-Za-z-]+(\.[0-9A-Za-z-]+)*)?$"
)
_ALIAS = re.compile(r"^[a-zA-Z0-9-_]+$")

# Metadata fields that are strings even when written as YAML numbers
_STRING_FIELDS = ("apiVersion", "name", "version", "appVersion", "kubeVersion")


def is_valid_semver(version: str) -> bool:
    """Return True if the version is a semantic version."""
    return bool(_SEMVER.match(version))


def read_values(data: bytes | str) -> dict[str, Any]:
    """Parse chart values, which must be a YAML mapping."""
    try:
        values = yaml.safe_load(data)
    except yaml.YAMLError as err:
        raise ValueError(f"error converting YAML to JSON: {err}") from err
    if values is None:
        return {}
    if not isinstance(values, dict):
        raise ValueError(
            f"error unmarshaling values: expected a map, got {type(values).__name__}"
        )
    return values


@dataclass
class _Base(DataClassDictMixin):
    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass
class Maintainer(_Base):
    """A person responsible for the chart."""

    name: str = ""
    email: str | None = None
    url: str | None = None


@dataclass
class Dependency(_Base):
    """A chart that this chart depends on."""

    name: str = ""
    version: str | None = None
    repository: str | None = None
    condition: str | None = None
    tags: list[str] | None = None
    enabled: bool | None = None
    alias: str | None = None

    def validate(self) -> None:
        if not self.name:
            raise ChartException("dependency name is required")
        if self.alias and not _ALIAS.match(self.alias):
            raise ChartException(
                f"dependency {self.name!r} has disallowed characters in the alias"
            )


@dataclass
class Metadata(_Base):
    """The contents of Chart.yaml."""

    api_version: str = field(metadata=field_options(alias="apiVersion"), default="")
    name: str = ""
    version: str = ""
    kube_version: str | None = field(
        metadata=field_options(alias="kubeVersion"), default=None
    )
    description: str | None = None
    type: str | None = None
    keywords: list[str] | None = None
    home: str | None = None
    sources: list[str] | None = None
    icon: str | None = None
    app_version: str | None = field(
        metadata=field_options(alias="appVersion"), default=None
    )
    deprecated: bool | None = None
    annotations: dict[str, str] | None = None
    maintainers: list[Maintainer] | None = None
    dependencies: list[Dependency] | None = None

    @classmethod
    def parse(cls, data: bytes) -> "Metadata":
        """Parse the contents of Chart.yaml."""
        try:
            doc = yaml.safe_load(data)
        except yaml.YAMLError as err:
            raise ChartException(f"cannot load {CHART_FILE}: {err}") from err
        if not isinstance(doc, dict):
            raise ChartException(f"cannot load {CHART_FILE}: expected a map")
        for key in _STRING_FIELDS:
            if (value := doc.get(key)) is not None and not isinstance(value, str):
                doc[key] = str(value)
        try:
            metadata = cls.from_dict(doc)
        except (MissingField, InvalidFieldValue, ValueError, TypeError) as err:
            raise ChartException(f"cannot load {CHART_FILE}: {err}") from err
        if not metadata.api_version:
            metadata.api_version = API_VERSION_V1
        return metadata

    def validate(self) -> None:
        """Raise `ChartException` if the metadata is not valid."""
        if not self.api_version:
            raise ChartException("chart.metadata.apiVersion is required")
        if not self.name:
            raise ChartException("chart.metadata.name is required")
        if self.name != posixpath.basename(self.name):
            raise ChartException(f"chart.metadata.name {self.name!r} is invalid")
        if not self.version:
            raise ChartException("chart.metadata.version is required")
        if not is_valid_semver(self.version):
            raise ChartException(f"chart.metadata.version {self.version!r} is invalid")
        if (self.type or "") not in CHART_TYPES:
            raise ChartException("chart.metadata.type must be application or library")
        seen: set[str] = set()
        for dependency in self.dependencies or []:
            dependency.validate()
            key = dependency.alias or dependency.name
            if key in seen:
                raise ChartException(
                    f"more than one dependency with name or alias {key!r}"
                )
            seen.add(key)


@dataclass
class File:
    """A file in a chart."""

    name: str
    data: bytes


@dataclass
class Chart:
    """A loaded chart."""

    metadata: Metadata
    """The contents of Chart.yaml."""

    values: dict[str, Any] = field(default_factory=dict)
    """The default values from values.yaml."""

    schema: bytes | None = None
    """The values schema, if present."""

    templates: list[File] = field(default_factory=list)
    """The templates, named relative to the chart root."""

    files: list[File] = field(default_factory=list)
    """Every other file in the chart."""

    dependencies: list["Chart"] = field(default_factory=list)
    """Subcharts included in the chart."""

    @property
    def name(self) -> str:
        return self.metadata.name

    def validate(self) -> None:
        """Raise `ChartException` if the chart is not installable."""
        self.metadata.validate()
        for template in self.templates:
            try:
                template.data.decode("utf-8")
            except UnicodeDecodeError as err:
                raise ChartException(
                    f"chart {self.name!r} template {template.name!r} is not valid text: {err}"
                ) from err
        for dependency in self.dependencies:
            try:
                dependency.validate()
            except ChartException as err:
                raise ChartException(
                    f"chart {self.name!r} dependency: {err}"
                ) from err


def load_files(files: dict[str, bytes]) -> Chart:
    """Load a chart from its files, named relative to the chart root."""
    if CHART_FILE not in files:
        raise ChartException(f"{CHART_FILE} file is missing")
    chart = Chart(metadata=Metadata.parse(files[CHART_FILE]))
    subcharts: defaultdict[str, dict[str, bytes]] = defaultdict(dict)
    for name, data in sorted(files.items()):
        if name == CHART_FILE:
            continue
        if name == VALUES_FILE:
            try:
                chart.values = read_values(data)
            except ValueError as err:
                raise ChartException(f"cannot load {VALUES_FILE}: {err}") from err
        elif name == SCHEMA_FILE:
            chart.schema = data
        elif name.startswith(f"{TEMPLATES_DIR}/"):
            chart.templates.append(File(name=name, data=data))
        elif name.startswith(f"{CHARTS_DIR}/"):
            rel = name.removeprefix(f"{CHARTS_DIR}/")
            if "/" in rel:
                subchart, subname = rel.split("/", 1)
                subcharts[subchart][subname] = data
            elif rel.endswith(".tgz"):
                try:
                    chart.dependencies.append(load_archive(io.BytesIO(data)))
                except ChartException as err:
                    raise ChartException(f"error unpacking subchart {rel}: {err}") from err
            else:
                chart.files.append(File(name=name, data=data))
        else:
            chart.files.append(File(name=name, data=data))
    for subchart, subfiles in sorted(subcharts.items()):
        try:
            chart.dependencies.append(load_files(subfiles))
        except ChartException as err:
            raise ChartException(f"error unpacking subchart {subchart}: {err}") from err
    _LOGGER.debug(
        "Loaded chart %s with %d templates", chart.name, len(chart.templates)
    )
    return chart


def load_archive(fileobj: IO[bytes]) -> Chart:
    """Load a chart from a gzip compressed tar stream.

    The stream is read sequentially, so `fileobj` may be a pipe.
    """
    files: dict[str, bytes] = {}
    try:
        with tarfile.open(fileobj=fileobj, mode="r|gz") as tar:
            for member in tar:
                if not member.isfile():
                    continue
                parts = posixpath.normpath(member.name).split("/")
                if len(parts) < 2 or ".." in parts or member.name.startswith("/"):
                    raise ChartException(
                        f"chart illegally contains content outside the base directory: {member.name!r}"
                    )
                extracted = tar.extractfile(member)
                if extracted is None:
                    continue
                files["/".join(parts[1:])] = extracted.read()
    except (tarfile.TarError, EOFError, zlib.error, OSError) as err:
        raise ChartException(f"read chart archive: {err}") from err
    if not files:
        raise ChartException("no files in chart archive")
    return load_files(files)
