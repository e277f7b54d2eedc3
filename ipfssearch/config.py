"""Central configuration: defaults, YAML files, environment and validation."""

from __future__ import annotations

import os
import re
import sys
from dataclasses import dataclass, field, fields, is_dataclass
from fractions import Fraction
from typing import Any, Dict, List, Mapping, Optional, TextIO

import yaml


class ConfigError(Exception):
    """Configuration could not be read or is incomplete."""


def _opt(key: str, kind: str, default: Any = None, *, env: Optional[str] = None, factory=None):
    meta = {"yaml": key, "kind": kind, "env": env}
    if factory is not None:
        return field(default_factory=factory, metadata=meta)
    return field(default=default, metadata=meta)


# Durations -----------------------------------------------------------------

_NS_PER_UNIT = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60_000_000_000,
    "h": 3_600_000_000_000,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(text: str) -> float:
    """Parse a duration such as ``5m0s`` or ``150ms`` into seconds."""
    s = text.strip()
    sign = 1
    if s[:1] in ("+", "-"):
        sign = -1 if s[0] == "-" else 1
        s = s[1:]
    if s == "0":
        return 0.0
    if not s:
        raise ValueError(f"invalid duration {text!r}")
    total = Fraction(0)
    pos = 0
    while pos < len(s):
        match = _DURATION_PART.match(s, pos)
        if match is None:
            raise ValueError(f"invalid duration {text!r}")
        total += Fraction(match.group(1)) * _NS_PER_UNIT[match.group(2)]
        pos = match.end()
    return sign * round(total) / 1e9


def _fraction_str(value: int, unit: int) -> str:
    whole, rest = divmod(value, unit)
    if not rest:
        return str(whole)
    digits = str(rest).rjust(len(str(unit)) - 1, "0").rstrip("0")
    return f"{whole}.{digits}"


def format_duration(seconds: float) -> str:
    """Format seconds the way durations are written in configuration files."""
    ns = round(seconds * 1e9)
    if ns == 0:
        return "0s"
    sign = "-" if ns < 0 else ""
    ns = abs(ns)
    if ns < 1_000:
        return f"{sign}{ns}ns"
    if ns < 1_000_000:
        return f"{sign}{_fraction_str(ns, 1_000)}µs"
    if ns < 1_000_000_000:
        return f"{sign}{_fraction_str(ns, 1_000_000)}ms"
    hours, rest = divmod(ns, _NS_PER_UNIT["h"])
    minutes, rest = divmod(rest, _NS_PER_UNIT["m"])
    secs = _fraction_str(rest, 1_000_000_000) + "s"
    if hours:
        return f"{sign}{hours}h{minutes}m{secs}"
    if minutes:
        return f"{sign}{minutes}m{secs}"
    return f"{sign}{secs}"


# Byte sizes ----------------------------------------------------------------

_BYTE_UNITS = [("EB", 1 << 60), ("PB", 1 << 50), ("TB", 1 << 40), ("GB", 1 << 30), ("MB", 1 << 20), ("KB", 1 << 10)]
_BYTE_SUFFIXES: Dict[str, int] = {"": 1, "b": 1}
for _name, _mult in _BYTE_UNITS:
    _letter = _name[0].lower()
    _BYTE_SUFFIXES.update({_letter: _mult, _letter + "b": _mult, _letter + "ib": _mult})
_BYTE_SIZE = re.compile(r"^\s*(\d+)\s*([a-zA-Z]*)\s*$")


def parse_byte_size(text: str) -> int:
    """Parse a size such as ``256KB`` or ``2MB`` (binary units) into bytes."""
    match = _BYTE_SIZE.match(text)
    if match is None:
        raise ValueError(f"invalid byte size {text!r}")
    unit = match.group(2).lower()
    if unit not in _BYTE_SUFFIXES:
        raise ValueError(f"invalid byte size unit in {text!r}")
    return int(match.group(1)) * _BYTE_SUFFIXES[unit]


def _format_byte_size(size: int) -> str:
    if size == 0:
        return "0B"
    for name, mult in _BYTE_UNITS:
        if size % mult == 0:
            return f"{size // mult}{name}"
    return f"{size}B"


# Sections ------------------------------------------------------------------


@dataclass
class IPFSConfig:
    """IPFS API and gateway endpoints."""

    api_url: str = _opt("api_url", "str", "http://localhost:5001", env="IPFS_API_URL")
    gateway_url: str = _opt("gateway_url", "str", "http://localhost:8080", env="IPFS_GATEWAY_URL")
    # 256KB is the default chunker block size: unreferenced files of exactly
    # this size are very likely chunks of larger files.
    partial_size: int = _opt("partial_size", "bytesize", 262144)


@dataclass
class OpenSearchConfig:
    """OpenSearch endpoint and bulk operation tuning."""

    url: str = _opt("url", "str", "http://localhost:9200", env="OPENSEARCH_URL")
    bulk_indexer_workers: int = _opt("bulk_indexer_workers", "int", factory=lambda: os.cpu_count() or 1)
    bulk_indexer_flush_bytes: int = _opt("bulk_flush_bytes", "bytesize", 5_000_000)
    bulk_indexer_flush_timeout: float = _opt("bulk_flush_timeout", "duration", 300.0)
    bulk_getter_batch_size: int = _opt("bulk_getter_batch_size", "int", 48)
    bulk_getter_batch_timeout: float = _opt("bulk_getter_batch_timeout", "duration", 0.15)


@dataclass
class RedisConfig:
    """Redis server addresses."""

    addresses: List[str] = _opt("addresses", "list", env="REDIS_ADDRESSES", factory=lambda: ["localhost:6379"])


@dataclass
class InstrConfig:
    """Tracing configuration."""

    sampling_ratio: float = _opt("sampling_ratio", "float", 0.01, env="OTEL_TRACE_SAMPLER_ARG")
    jaeger_endpoint: str = _opt(
        "jaeger_endpoint", "str", "http://localhost:14268/api/traces", env="OTEL_EXPORTER_JAEGER_ENDPOINT"
    )


@dataclass
class SnifferConfig:
    """Sniffer tuning."""

    last_seen_expiration: float = _opt(
        "lastseen_expiration", "duration", 3600.0, env="SNIFFER_LASTSEEN_EXPIRATION"
    )
    last_seen_prune_len: int = _opt("lastseen_prunelen", "int", 32768, env="SNIFFER_LASTSEEN_PRUNELEN")
    logger_timeout: float = _opt("logger_timeout", "duration", 60.0)
    buffer_size: int = _opt("buffer_size", "int", 512, env="SNIFFER_BUFFER_SIZE")


@dataclass
class Index:
    """A single index."""

    name: str = _opt("name", "str", "")
    prefix: str = _opt("prefix", "str", "")


@dataclass
class Indexes:
    """The indexes in use."""

    files: Index = _opt("files", "section", factory=lambda: Index("ipfs_files", "f"))
    directories: Index = _opt("directories", "section", factory=lambda: Index("ipfs_directories", "d"))
    invalids: Index = _opt("invalids", "section", factory=lambda: Index("ipfs_invalids", "i"))
    partials: Index = _opt("partials", "section", factory=lambda: Index("ipfs_partials", "p"))


@dataclass
class Queue:
    """A single queue."""

    name: str = _opt("name", "str", "")


@dataclass
class Queues:
    """The queues in use."""

    files: Queue = _opt("files", "section", factory=lambda: Queue("files"))
    directories: Queue = _opt("directories", "section", factory=lambda: Queue("directories"))
    hashes: Queue = _opt("hashes", "section", factory=lambda: Queue("hashes"))


@dataclass
class WorkersConfig:
    """Worker pool sizes and connection limits."""

    hash_workers: int = _opt("hash_workers", "int", 70, env="HASH_WORKERS")
    file_workers: int = _opt("file_workers", "int", 120, env="FILE_WORKERS")
    directory_workers: int = _opt("directory_workers", "int", 70, env="DIRECTORY_WORKERS")
    max_ipfs_conns: int = _opt("ipfs_max_connections", "int", 1000, env="IPFS_MAX_CONNECTIONS")
    max_extractor_conns: int = _opt(
        "extractor_max_connections", "int", 100, env="EXTRACTOR_MAX_CONNECTIONS"
    )


# Conversion helpers ----------------------------------------------------------


def _from_yaml(kind: str, value: Any, path: str) -> Any:
    def bad() -> ConfigError:
        return ConfigError(f"{path}: invalid value {value!r}")

    if kind == "str":
        if isinstance(value, (dict, list)):
            raise bad()
        return "" if value is None else str(value)
    if kind == "int":
        if value is None:
            return 0
        if isinstance(value, bool) or not isinstance(value, int):
            raise bad()
        return value
    if kind == "float":
        if value is None:
            return 0.0
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise bad()
        return float(value)
    if kind == "duration":
        if value is None:
            return 0.0
        if not isinstance(value, str):
            raise bad()
        try:
            return parse_duration(value)
        except ValueError as err:
            raise ConfigError(f"{path}: {err}") from err
    if kind == "bytesize":
        if value is None:
            return 0
        if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
            return value
        if not isinstance(value, str):
            raise bad()
        try:
            return parse_byte_size(value)
        except ValueError as err:
            raise ConfigError(f"{path}: {err}") from err
    if kind == "list":
        if value is None:
            return []
        if not isinstance(value, list) or any(isinstance(v, (dict, list)) for v in value):
            raise bad()
        return [str(v) for v in value]
    raise ValueError(f"unknown field kind {kind!r}")


def _from_env(kind: str, text: str, name: str) -> Any:
    try:
        if kind == "str":
            return text
        if kind == "int":
            return int(text)
        if kind == "float":
            return float(text)
        if kind == "duration":
            return parse_duration(text)
        if kind == "bytesize":
            return parse_byte_size(text)
        if kind == "list":
            return [part.strip() for part in text.split(",") if part.strip()]
    except ValueError as err:
        raise ConfigError(f"{name}: {err}") from err
    raise ValueError(f"unknown field kind {kind!r}")


def _to_plain(obj: Any) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for f in fields(obj):
        kind = f.metadata["kind"]
        value = getattr(obj, f.name)
        if kind == "section":
            value = _to_plain(value)
        elif kind == "duration":
            value = format_duration(value)
        elif kind == "bytesize":
            value = _format_byte_size(value)
        elif kind == "list":
            value = list(value)
        out[f.metadata["yaml"]] = value
    return out


def _update(obj: Any, data: Any, prefix: str) -> None:
    if not isinstance(data, dict):
        raise ConfigError(f"{prefix or 'configuration'}: expected a mapping")
    for f in fields(obj):
        key = f.metadata["yaml"]
        if key not in data:
            continue
        value = data[key]
        path = f"{prefix}.{key}" if prefix else key
        if f.metadata["kind"] == "section":
            if value is not None:
                _update(getattr(obj, f.name), value, path)
        else:
            setattr(obj, f.name, _from_yaml(f.metadata["kind"], value, path))


def _read_env(obj: Any, environ: Mapping[str, str]) -> None:
    for f in fields(obj):
        if f.metadata["kind"] == "section":
            _read_env(getattr(obj, f.name), environ)
            continue
        name = f.metadata.get("env")
        if name and name in environ:
            setattr(obj, f.name, _from_env(f.metadata["kind"], environ[name], name))


def find_zero_elements(obj: Any) -> List[str]:
    """Return the dotted names of all (nested) fields holding a zero value."""
    output: List[str] = []
    for f in fields(obj):
        name = f.metadata.get("yaml", f.name)
        value = getattr(obj, f.name)
        if is_dataclass(value):
            output.extend(f"{name}.{sub}" for sub in find_zero_elements(value))
        elif isinstance(value, (list, dict, tuple, set)):
            if len(value) == 0:
                output.append(name)
        elif not value:
            output.append(name)
    return output


# Central configuration -------------------------------------------------------


@dataclass
class Config:
    """All component configuration in one place."""

    ipfs: IPFSConfig = _opt("ipfs", "section", factory=IPFSConfig)
    opensearch: OpenSearchConfig = _opt("opensearch", "section", factory=OpenSearchConfig)
    redis: RedisConfig = _opt("redis", "section", factory=RedisConfig)
    instr: InstrConfig = _opt("instrumentation", "section", factory=InstrConfig)
    sniffer: SnifferConfig = _opt("sniffer", "section", factory=SnifferConfig)
    indexes: Indexes = _opt("indexes", "section", factory=Indexes)
    queues: Queues = _opt("queues", "section", factory=Queues)
    workers: WorkersConfig = _opt("workers", "section", factory=WorkersConfig)

    def to_yaml(self) -> str:
        """Serialise to a YAML document."""
        return yaml.safe_dump(_to_plain(self), sort_keys=False, allow_unicode=True, default_flow_style=False)

    def read_from_file(self, filename: str) -> None:
        """Override values with those present in a YAML file."""
        with open(filename, encoding="utf-8") as fh:
            try:
                data = yaml.safe_load(fh)
            except yaml.YAMLError as err:
                raise ConfigError(f"parsing {filename}: {err}") from err
        if data is not None:
            _update(self, data, "")

    def read_from_env(self, environ: Optional[Mapping[str, str]] = None) -> None:
        """Override values with those set in the environment."""
        _read_env(self, os.environ if environ is None else environ)

    def check(self) -> None:
        """Raise ConfigError when any value is missing."""
        missing = find_zero_elements(self)
        if missing:
            raise ConfigError(f"missing configuration values: {', '.join(missing)}")

    def write(self, path: str) -> None:
        """Write the configuration as YAML to ``path``."""
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(self.to_yaml())

    def dump(self, stream: Optional[TextIO] = None) -> None:
        """Write the configuration as YAML to ``stream`` (stdout by default)."""
        (sys.stdout if stream is None else stream).write(self.to_yaml())


def default() -> Config:
    """Return the default configuration."""
    return Config()


def get(config_file: str) -> Config:
    """Build configuration from defaults, then the file (if any), then the environment."""
    cfg = default()
    if config_file:
        print(f"Reading configuration file: {config_file}")
        try:
            cfg.read_from_file(config_file)
        except (OSError, ConfigError) as err:
            raise ConfigError(f"configuration file error: {err}") from err
    try:
        cfg.read_from_env()
    except ConfigError as err:
        raise ConfigError(f"environment error: {err}") from err
    return cfg