"""Cluster declaration loading.

The declaration is the shell-style ``cluster.conf`` written by ``conctl init``:

    CLUSTER_NAME="talos-physical"
    CONTROL_PLANE_IPS=(10.10.10.21)
    WORKER_IPS=(10.10.10.22 10.10.10.23)

It is parsed into a plain mapping first and then validated into an
immutable ``ClusterSpec``. Every validation failure surfaces as
``InvalidConfig`` (``MissingRequiredField`` for absent keys).
"""
import ipaddress
import logging
import re
import shlex
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..errors import InvalidConfig, MissingRequiredField
from .models import NodeIdentity, NodeRole

logger = logging.getLogger("conctl.cluster_spec")

# Declaration key -> ClusterSpec field
DECLARATION_KEYS: Dict[str, str] = {
    "CLUSTER_NAME": "cluster_name",
    "CLUSTER_ENDPOINT": "endpoint",
    "VIP_IP": "vip",
    "GATEWAY": "gateway",
    "NETWORK_CIDR": "network_cidr",
    "TALOS_VERSION": "talos_version",
    "CILIUM_VERSION": "cilium_version",
    "INSTALL_DISK": "install_disk",
    "CONTROL_PLANE_IPS": "control_plane_ips",
    "WORKER_IPS": "worker_ips",
    "NODE_INTERFACE": "interface",
}
FIELD_KEYS = {v: k for k, v in DECLARATION_KEYS.items()}

REQUIRED_KEYS = (
    "CLUSTER_NAME",
    "CLUSTER_ENDPOINT",
    "GATEWAY",
    "NETWORK_CIDR",
    "TALOS_VERSION",
    "CILIUM_VERSION",
    "INSTALL_DISK",
    "CONTROL_PLANE_IPS",
)
ARRAY_KEYS = ("CONTROL_PLANE_IPS", "WORKER_IPS")

VERSION_PATTERN = re.compile(r"^v?\d+\.\d+\.\d+([-+][0-9A-Za-z.-]+)?$")
_ASSIGNMENT = re.compile(r"^(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)=(.*)$")

DEFAULT_DECLARATION: Dict[str, Union[str, List[str]]] = {
    "CLUSTER_NAME": "talos-physical",
    "CLUSTER_ENDPOINT": "https://10.10.10.11:6443",
    "VIP_IP": "10.10.10.11",
    "GATEWAY": "10.10.10.1",
    "NETWORK_CIDR": "10.10.10.0/24",
    "TALOS_VERSION": "v1.11.0",
    "CILIUM_VERSION": "1.16.5",
    "INSTALL_DISK": "/dev/sda",
    "CONTROL_PLANE_IPS": ["10.10.10.21"],
    "WORKER_IPS": ["10.10.10.22", "10.10.10.23", "10.10.10.24"],
}


def _check_ip(value: str) -> str:
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        raise ValueError(f"malformed IP address: {value!r}")


class ClusterSpec(BaseModel):
    """Validated, immutable cluster description."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    cluster_name: str = Field(..., min_length=1, description="Cluster name")
    endpoint: str = Field(..., description="Kubernetes API endpoint URL")
    vip: Optional[str] = Field(default=None, description="Virtual IP for an HA control plane")
    gateway: str = Field(..., description="Default gateway for node interfaces")
    network_cidr: str = Field(..., description="Node subnet")
    talos_version: str = Field(..., description="Talos Linux version")
    cilium_version: str = Field(..., description="Cilium chart version")
    install_disk: str = Field(..., description="Disk Talos installs to")
    control_plane_ips: Tuple[str, ...] = Field(..., min_length=1)
    worker_ips: Tuple[str, ...] = Field(default=())
    interface: str = Field(default="eth0", min_length=1, description="Node network interface")

    @field_validator("cluster_name", "interface")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("vip", mode="before")
    @classmethod
    def empty_vip_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("vip", "gateway")
    @classmethod
    def validate_address(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _check_ip(v)

    @field_validator("control_plane_ips", "worker_ips")
    @classmethod
    def validate_node_ips(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(_check_ip(ip) for ip in v)

    @field_validator("network_cidr")
    @classmethod
    def validate_cidr(cls, v: str) -> str:
        try:
            return str(ipaddress.ip_network(v.strip(), strict=False))
        except ValueError:
            raise ValueError(f"malformed network CIDR: {v!r}")

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        parsed = urlparse(v.strip())
        if parsed.scheme not in ("https", "http") or not parsed.hostname:
            raise ValueError(f"endpoint must be an http(s) URL with a host: {v!r}")
        return v.strip()

    @field_validator("talos_version", "cilium_version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        v = v.strip()
        if not VERSION_PATTERN.match(v):
            raise ValueError(f"not a semantic version: {v!r}")
        return v

    @field_validator("install_disk")
    @classmethod
    def validate_disk(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith("/"):
            raise ValueError(f"install disk must be an absolute device path: {v!r}")
        return v

    @model_validator(mode="after")
    def check_topology(self) -> "ClusterSpec":
        seen = set()
        for ip in self.control_plane_ips + self.worker_ips:
            if ip in seen:
                raise ValueError(f"duplicate node IP: {ip}")
            seen.add(ip)

        if len(self.control_plane_ips) > 1 and self.vip is None:
            raise ValueError("VIP_IP is required when more than one control-plane node is declared")
        if self.vip is not None and self.vip in seen:
            raise ValueError(f"VIP {self.vip} collides with a node IP")

        network = ipaddress.ip_network(self.network_cidr)
        vip = (self.vip,) if self.vip is not None else ()
        for ip in (self.gateway,) + vip + self.control_plane_ips + self.worker_ips:
            if ipaddress.ip_address(ip) not in network:
                raise ValueError(f"{ip} is outside network {self.network_cidr}")
        return self

    @property
    def is_ha(self) -> bool:
        return len(self.control_plane_ips) > 1

    @property
    def prefix_length(self) -> int:
        return ipaddress.ip_network(self.network_cidr).prefixlen

    @property
    def installer_image(self) -> str:
        return f"ghcr.io/siderolabs/installer:{self.talos_version}"

    def nodes(self) -> List[NodeIdentity]:
        """Declared nodes in order, named positionally and 1-indexed per role."""
        nodes = [
            NodeIdentity(name=f"control-plane-{n}", ip=ip, role=NodeRole.CONTROL_PLANE, index=n)
            for n, ip in enumerate(self.control_plane_ips, start=1)
        ]
        nodes.extend(
            NodeIdentity(name=f"worker-{n}", ip=ip, role=NodeRole.WORKER, index=n)
            for n, ip in enumerate(self.worker_ips, start=1)
        )
        return nodes

    def nodes_for(self, role: NodeRole) -> List[NodeIdentity]:
        return [node for node in self.nodes() if node.role is role]

    def template_context(self) -> Dict[str, Any]:
        """Values available to committed fragment templates."""
        context = self.model_dump()
        context.update(
            is_ha=self.is_ha,
            prefix_length=self.prefix_length,
            installer_image=self.installer_image,
        )
        return context


def _split_words(raw: str, lineno: int) -> List[str]:
    try:
        return shlex.split(raw, comments=True)
    except ValueError as e:
        raise InvalidConfig(f"Unparseable value on line {lineno}: {e}")


def _array_tokens(raw: str, lineno: int) -> List[str]:
    """Words of one array line, with ``(`` and ``)`` as separate tokens.

    Comments end at the line, so a ``)`` after ``#`` never closes the array.
    """
    lexer = shlex.shlex(raw, posix=True, punctuation_chars="()")
    lexer.whitespace_split = True
    try:
        return list(lexer)
    except ValueError as e:
        raise InvalidConfig(f"Unparseable value on line {lineno}: {e}")


def _parse_array(key: str, first: str, lines: List[str], i: int, lineno: int) -> Tuple[List[str], int]:
    """Collect array items from ``first`` and following lines; returns items and the next line index."""
    items: List[str] = []
    tokens = _array_tokens(first, lineno)
    while ")" not in tokens:
        items.extend(tokens)
        if i >= len(lines):
            raise InvalidConfig(f"Unterminated array for {key} starting on line {lineno}")
        tokens = _array_tokens(lines[i], i + 1)
        i += 1
    close = tokens.index(")")
    items.extend(tokens[:close])
    if tokens[close + 1:]:
        raise InvalidConfig(f"Unexpected text after array {key} on line {i}")
    if "(" in items:
        raise InvalidConfig(f"Nested array in {key} starting on line {lineno}")
    return items, i


def parse_cluster_declaration(text: str) -> Dict[str, Union[str, List[str]]]:
    """Parse shell-style ``KEY=value`` / ``KEY=(a b c)`` assignments.

    Arrays may span several lines, and each line may carry its own comment.
    Later assignments override earlier ones, as they would when the file is
    sourced.
    """
    values: Dict[str, Union[str, List[str]]] = {}
    lines = text.splitlines()
    i = 0
    while i < len(lines):
        lineno = i + 1
        line = lines[i].strip()
        i += 1
        if not line or line.startswith("#"):
            continue

        match = _ASSIGNMENT.match(line)
        if not match:
            raise InvalidConfig(f"Line {lineno} is not a KEY=value assignment: {line!r}")
        key, raw = match.group(1), match.group(2).strip()

        if raw.startswith("("):
            values[key], i = _parse_array(key, raw[1:], lines, i, lineno)
        else:
            values[key] = " ".join(_split_words(raw, lineno))
    return values


def _validation_message(error: ValidationError) -> Tuple[str, Optional[str]]:
    problems = []
    first_key = None
    for err in error.errors():
        loc = err.get("loc") or ()
        field = str(loc[0]) if loc else ""
        key = FIELD_KEYS.get(field, field) if field else "cluster"
        first_key = first_key or key
        problems.append(f"{key}: {err.get('msg')}")
    return "; ".join(problems), first_key


def cluster_spec_from_mapping(data: Mapping[str, Union[str, List[str]]]) -> ClusterSpec:
    """Validate a parsed declaration into a ClusterSpec.

    Raises:
        MissingRequiredField: If a required key is absent or empty, or VIP_IP
            is missing for a multi control-plane cluster
        InvalidConfig: For any other validation failure
    """
    for key in REQUIRED_KEYS:
        value = data.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise MissingRequiredField(key)
        if isinstance(value, list) and not value:
            raise InvalidConfig(f"{key} must list at least one node", fragment=key)

    fields: Dict[str, Any] = {}
    for key, field in DECLARATION_KEYS.items():
        if key not in data:
            continue
        value = data[key]
        if key in ARRAY_KEYS:
            if isinstance(value, str):
                value = value.split()
            fields[field] = tuple(value)
        elif isinstance(value, list):
            raise InvalidConfig(f"{key} must be a single value, not an array")
        else:
            fields[field] = value

    unknown = sorted(set(data) - set(DECLARATION_KEYS))
    if unknown:
        logger.debug(f"Ignoring unknown declaration keys: {', '.join(unknown)}")

    if len(fields.get("control_plane_ips", ())) > 1 and not str(fields.get("vip") or "").strip():
        raise MissingRequiredField(
            "VIP_IP",
            "Missing required field: VIP_IP (required for more than one control-plane node)",
        )

    try:
        return ClusterSpec(**fields)
    except ValidationError as e:
        message, key = _validation_message(e)
        raise InvalidConfig(f"Invalid cluster declaration: {message}", fragment=key) from e


def load_cluster_spec(path: Union[str, Path]) -> ClusterSpec:
    """Read and validate a cluster declaration file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise InvalidConfig(f"Cluster declaration not found: {path} (run: conctl init)")
    spec = cluster_spec_from_mapping(parse_cluster_declaration(text))
    logger.info(
        f"📄 Loaded cluster '{spec.cluster_name}' from {path}: "
        f"{len(spec.control_plane_ips)} control-plane, {len(spec.worker_ips)} worker node(s)"
    )
    return spec


def _quote_array(values: List[str]) -> str:
    return "(" + " ".join(shlex.quote(v) for v in values) + ")"


def render_cluster_declaration(values: Optional[Mapping[str, Union[str, List[str]]]] = None) -> str:
    """Render a commented cluster.conf for operators to edit."""
    values = dict(DEFAULT_DECLARATION if values is None else values)

    def scalar(key: str) -> str:
        return f'{key}="{values.get(key) or ""}"'

    lines = [
        "# Physical Cluster Configuration",
        "# Edit this file to customize your cluster setup",
        "",
        scalar("CLUSTER_NAME"),
        scalar("CLUSTER_ENDPOINT"),
        scalar("VIP_IP"),
        scalar("GATEWAY"),
        scalar("NETWORK_CIDR"),
        "",
        scalar("TALOS_VERSION"),
        scalar("CILIUM_VERSION"),
        scalar("INSTALL_DISK"),
        "",
        "# Node IPs - Edit these arrays as needed",
        f"CONTROL_PLANE_IPS={_quote_array(list(values.get('CONTROL_PLANE_IPS') or []))}",
        f"WORKER_IPS={_quote_array(list(values.get('WORKER_IPS') or []))}",
    ]
    if values.get("NODE_INTERFACE"):
        lines.append(scalar("NODE_INTERFACE"))
    return "\n".join(lines) + "\n"
