"""Patch merging.

Fragments are applied to an empty document in a fixed order: committed,
then generated-secret, then per-node. Mappings merge recursively; lists and
scalars are replaced by the later fragment. Fragments of the same
classification and scope must agree on every leaf they both set.
"""
import copy
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from ..errors import InvalidConfig, PatchConflict
from .cluster_spec import ClusterSpec
from .models import Classification, NodeIdentity, NodeRole, PatchFragment, Scope, ScopeKind

logger = logging.getLogger("conctl.merge")

DEFAULT_ROUTE = "0.0.0.0/0"


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge two dictionaries, with override taking precedence.

    Neither input is modified.
    """
    result = copy.deepcopy(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def iter_leaves(document: Dict[str, Any], prefix: Tuple[str, ...] = ()) -> Iterable[Tuple[Tuple[str, ...], Any]]:
    """Yield (path, value) for every non-mapping value. Empty mappings set nothing."""
    for key, value in document.items():
        path = prefix + (str(key),)
        if isinstance(value, dict):
            yield from iter_leaves(value, path)
        else:
            yield path, value


def _format_path(path: Tuple[str, ...]) -> str:
    return ".".join(path)


def _find_clash(leaves: Dict[Tuple[str, ...], Tuple[Any, str]], path: Tuple[str, ...], value: Any):
    """Return the recorded path this leaf clashes with, if any."""
    if path in leaves:
        return path if leaves[path][0] != value else None
    for depth in range(1, len(path)):
        if path[:depth] in leaves:
            return path[:depth]
    for existing in leaves:
        if len(existing) > len(path) and existing[:len(path)] == path:
            return existing
    return None


def check_conflicts(fragments: Sequence[PatchFragment]) -> None:
    """Reject fragments of equal priority that disagree.

    Raises:
        PatchConflict: If two fragments with the same classification and
            scope set the same key to different values, or one sets a
            value where the other sets a mapping
    """
    groups: Dict[Tuple[Classification, Scope], List[PatchFragment]] = defaultdict(list)
    for fragment in fragments:
        groups[(fragment.classification, fragment.scope)].append(fragment)

    for (classification, scope), members in groups.items():
        leaves: Dict[Tuple[str, ...], Tuple[Any, str]] = {}
        for fragment in members:
            for path, value in iter_leaves(fragment.content):
                clash = _find_clash(leaves, path, value)
                if clash is not None:
                    other_name = leaves[clash][1]
                    where = _format_path(min(clash, path, key=len))
                    raise PatchConflict(
                        f"Fragments '{other_name}' and '{fragment.name}' ({classification.value}, "
                        f"{scope}) set {where} to different values",
                        path=where,
                        fragments=(other_name, fragment.name),
                        fragment=fragment.name,
                    )
                leaves[path] = (value, fragment.name)


def build_node_fragment(spec: ClusterSpec, node: NodeIdentity) -> PatchFragment:
    """Network identity for one node: hostname, static address, default route and VIP."""
    interface: Dict[str, Any] = {
        "interface": spec.interface,
        "dhcp": False,
        "addresses": [f"{node.ip}/{spec.prefix_length}"],
        "routes": [{"network": DEFAULT_ROUTE, "gateway": spec.gateway}],
    }
    if node.role is NodeRole.CONTROL_PLANE and spec.vip:
        interface["vip"] = {"ip": spec.vip}

    return PatchFragment(
        name=f"{node.name}-patch",
        classification=Classification.PER_NODE,
        content={
            "machine": {
                "network": {
                    "hostname": node.name,
                    "interfaces": [interface],
                }
            }
        },
        scope=Scope.for_node(node.name),
    )


@dataclass(frozen=True)
class PatchLayerSequence:
    """Ordered fragments for one role, plus the per-node fragment of each node."""
    role: NodeRole
    shared: Tuple[PatchFragment, ...]
    node_fragments: Dict[str, PatchFragment] = field(default_factory=dict)

    def layers_for(self, node: NodeIdentity) -> List[PatchFragment]:
        if node.role is not self.role:
            raise InvalidConfig(f"{node.name} is not a {self.role.value} node", node=node.name, role=self.role.value)
        try:
            return list(self.shared) + [self.node_fragments[node.name]]
        except KeyError:
            raise InvalidConfig("No per-node fragment", node=node.name, role=self.role.value)

    def merged_for(self, node: NodeIdentity) -> Dict[str, Any]:
        return merge_layers(self.layers_for(node))


def merge_layers(layers: Sequence[PatchFragment]) -> Dict[str, Any]:
    """Apply layers to an empty document in order."""
    document: Dict[str, Any] = {}
    for layer in layers:
        document = deep_merge(document, layer.content)
    return document


def _order(fragments: Iterable[PatchFragment]) -> List[PatchFragment]:
    # Stable: keeps the given order within a classification
    return sorted(fragments, key=lambda f: f.classification.priority)


class PatchMerger:
    """Builds one PatchLayerSequence per node role."""

    def merge(
        self,
        spec: ClusterSpec,
        committed: Sequence[PatchFragment],
        secret: Sequence[PatchFragment],
    ) -> Dict[NodeRole, PatchLayerSequence]:
        for fragment in committed:
            if fragment.classification is not Classification.COMMITTED:
                raise InvalidConfig("Expected a committed fragment", fragment=fragment.name)
        for fragment in secret:
            if fragment.classification is not Classification.GENERATED_SECRET:
                raise InvalidConfig("Expected a generated-secret fragment", fragment=fragment.name)

        node_fragments = {node.name: build_node_fragment(spec, node) for node in spec.nodes()}
        check_conflicts(list(committed) + list(secret) + list(node_fragments.values()))

        sequences = {}
        for role in NodeRole:
            nodes = spec.nodes_for(role)
            shared = tuple(
                f for f in _order(list(committed) + list(secret))
                if f.scope.kind is ScopeKind.CLUSTER_WIDE or f.scope == Scope.for_role(role)
            )
            sequences[role] = PatchLayerSequence(
                role=role,
                shared=shared,
                node_fragments={node.name: node_fragments[node.name] for node in nodes},
            )
            logger.debug(
                f"{role.value}: {len(shared)} shared layer(s) "
                f"[{', '.join(f.name for f in shared)}] + {len(nodes)} per-node"
            )
        return sequences
