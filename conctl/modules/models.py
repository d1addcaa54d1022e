"""Data models for patch fragments, node identities and machine configs."""
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional


class NodeRole(str, Enum):
    """Node roles in the Talos cluster."""
    CONTROL_PLANE = 'control-plane'
    WORKER = 'worker'

    @property
    def machine_type(self) -> str:
        """Name talosctl uses for the role's base template."""
        return 'controlplane' if self is NodeRole.CONTROL_PLANE else 'worker'


class Classification(str, Enum):
    """Where a fragment comes from. Declaration order is merge order."""
    COMMITTED = 'committed'
    GENERATED_SECRET = 'generated-secret'
    PER_NODE = 'per-node'

    @property
    def priority(self) -> int:
        return list(Classification).index(self)


class ScopeKind(str, Enum):
    CLUSTER_WIDE = 'cluster-wide'
    CONTROL_PLANE = 'control-plane'
    WORKER = 'worker'
    NODE = 'node'


@dataclass(frozen=True)
class Scope:
    """Which nodes a fragment targets."""
    kind: ScopeKind
    node: Optional[str] = None

    @classmethod
    def cluster_wide(cls) -> 'Scope':
        return cls(ScopeKind.CLUSTER_WIDE)

    @classmethod
    def for_role(cls, role: NodeRole) -> 'Scope':
        return cls(ScopeKind.CONTROL_PLANE if role is NodeRole.CONTROL_PLANE else ScopeKind.WORKER)

    @classmethod
    def for_node(cls, name: str) -> 'Scope':
        return cls(ScopeKind.NODE, name)

    def __str__(self) -> str:
        return f"node:{self.node}" if self.kind is ScopeKind.NODE else self.kind.value


@dataclass(frozen=True)
class PatchFragment:
    """A named unit of configuration to be merged.

    ``source_text`` keeps the exact serialized form for fragments whose text
    layout matters (the CNI inline manifest); ``content`` is always the
    structured document used for merging.
    """
    name: str
    classification: Classification
    content: Dict[str, Any]
    scope: Scope = field(default_factory=Scope.cluster_wide)
    source_text: Optional[str] = None
    source_path: Optional[Path] = None

    @property
    def is_secret(self) -> bool:
        return self.classification is Classification.GENERATED_SECRET


@dataclass(frozen=True)
class NodeIdentity:
    """A declared node: positional name, address and role."""
    name: str
    ip: str
    role: NodeRole
    index: int


@dataclass(frozen=True)
class MachineConfig:
    """A fully resolved configuration document for one node."""
    node: NodeIdentity
    document: Dict[str, Any]
    path: Optional[Path] = None

    @property
    def hostname(self) -> str:
        return self.node.name


@dataclass(frozen=True)
class CredentialBundle:
    """Cluster client configuration (talosconfig) shared by all nodes."""
    content: str
    path: Optional[Path] = None
    operator_path: Optional[Path] = None


@dataclass(frozen=True)
class BaseTemplates:
    """Base machine configs per role plus the client configuration."""
    controlplane: Dict[str, Any]
    worker: Dict[str, Any]
    talosconfig: str

    def for_role(self, role: NodeRole) -> Dict[str, Any]:
        return self.controlplane if role is NodeRole.CONTROL_PLANE else self.worker
