"""Committed, non-secret patch fragments.

Fragments live in a versioned directory (``setup/patches`` by default):

    setup/patches/*.yaml               applied to every node
    setup/patches/controlplane/*.yaml  control-plane nodes only
    setup/patches/worker/*.yaml        worker nodes only

Each file is a Jinja2 template rendered against the cluster declaration,
so values such as ``{{ install_disk }}`` or ``{{ network_cidr }}`` come from
``cluster.conf`` instead of being duplicated.
"""
import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

import yaml
from jinja2 import Environment, StrictUndefined, TemplateSyntaxError, UndefinedError
from jsonschema import ValidationError, validate

from ..errors import InvalidConfig
from ..utils import is_within
from .cluster_spec import ClusterSpec
from .models import Classification, NodeRole, PatchFragment, Scope

logger = logging.getLogger("conctl.fragments")

ROLE_DIRS: Dict[str, NodeRole] = {
    "controlplane": NodeRole.CONTROL_PLANE,
    "worker": NodeRole.WORKER,
}

# Values documents for chart rendering may sit beside the patches
EXCLUDED_FILES = ("cilium-values.yaml",)

# Only meaningful with more than one control-plane node
HA_ONLY_FRAGMENTS = ("vip",)

FRAGMENT_SCHEMA = {
    "type": "object",
    "propertyNames": {"enum": ["version", "debug", "persist", "machine", "cluster"]},
    "properties": {
        "version": {"type": "string"},
        "debug": {"type": "boolean"},
        "persist": {"type": "boolean"},
        "machine": {"type": "object"},
        "cluster": {"type": "object"},
    },
}


def validate_fragment_content(name: str, content: Any) -> Dict[str, Any]:
    """Check a parsed fragment has the shape of a Talos config patch."""
    try:
        validate(instance=content, schema=FRAGMENT_SCHEMA)
    except ValidationError as ve:
        raise InvalidConfig(f"Fragment does not look like a machine config patch: {ve.message}", fragment=name)
    return content


class CommittedFragmentStore:
    """Reads committed fragments and never anything from the secret output directory."""

    def __init__(self, root: Union[str, Path], ephemeral_dir: Union[str, Path]):
        self.root = Path(root)
        self.ephemeral_dir = Path(ephemeral_dir)
        if is_within(self.ephemeral_dir, self.root) or is_within(self.root, self.ephemeral_dir):
            raise InvalidConfig(
                f"Generated secret directory {self.ephemeral_dir} overlaps committed patches {self.root}"
            )
        self._env = Environment(
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )

    def list_paths(self) -> List[Tuple[Path, Scope]]:
        """Fragment files with their scope, cluster-wide first, each group sorted by name."""
        if not self.root.is_dir():
            raise InvalidConfig(f"Committed patches directory not found: {self.root}")

        found: List[Tuple[Path, Scope]] = []
        groups = [(self.root, Scope.cluster_wide())]
        groups.extend((self.root / d, Scope.for_role(role)) for d, role in ROLE_DIRS.items())
        for directory, scope in groups:
            if not directory.is_dir():
                continue
            for path in sorted(directory.glob("*.yaml")):
                if path.name in EXCLUDED_FILES or not path.is_file():
                    continue
                if is_within(path, self.ephemeral_dir):
                    continue
                found.append((path, scope))
        return found

    def _fragment_name(self, path: Path) -> str:
        return path.relative_to(self.root).with_suffix("").as_posix()

    def render(self, path: Path, spec: ClusterSpec) -> str:
        name = self._fragment_name(path)
        try:
            template = self._env.from_string(path.read_text(encoding="utf-8"))
            return template.render(**spec.template_context())
        except UndefinedError as e:
            raise InvalidConfig(f"Undefined template variable: {e}", fragment=name) from e
        except TemplateSyntaxError as e:
            raise InvalidConfig(f"Template syntax error on line {e.lineno}: {e.message}", fragment=name) from e

    def load(self, spec: ClusterSpec) -> List[PatchFragment]:
        """Render, parse and validate every committed fragment for this cluster."""
        fragments = []
        for path, scope in self.list_paths():
            name = self._fragment_name(path)
            if path.stem in HA_ONLY_FRAGMENTS and not spec.is_ha:
                logger.info(f"ℹ Single control plane node - skipping {name}")
                continue

            text = self.render(path, spec)
            try:
                content = yaml.safe_load(text)
            except yaml.YAMLError as e:
                raise InvalidConfig(f"Invalid YAML: {e}", fragment=name) from e
            if content is None:
                logger.warning(f"⚠️  Fragment {name} is empty - skipping")
                continue

            fragments.append(PatchFragment(
                name=name,
                classification=Classification.COMMITTED,
                content=validate_fragment_content(name, content),
                scope=scope,
                source_path=path,
            ))
            logger.debug(f"✓ {name} ({scope})")
        return fragments
