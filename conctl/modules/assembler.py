"""Per-node machine config assembly.

Nodes are processed in declaration order, control-plane first. Each node's
document is written atomically under its positional name. A run starts by
removing node documents and the client configuration left by the previous
run and drops an ``.incomplete`` marker that is only removed once every
node and the client configuration have been written. A failing node aborts
the run; documents already written by this run stay in place for
inspection.
"""
import logging
import shutil
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple, Union

from ..errors import CompilerError, InvalidConfig
from ..utils import dump_yaml, redact_sensitive_data, write_text_atomic
from .cluster_spec import ClusterSpec
from .merge import PatchLayerSequence
from .models import BaseTemplates, CredentialBundle, MachineConfig, NodeIdentity, NodeRole

logger = logging.getLogger("conctl.assembler")

INCOMPLETE_MARKER = ".incomplete"
TALOSCONFIG_FILE = "talosconfig"
NODE_FILE_PATTERNS = ("control-plane-*.yaml", "worker-*.yaml")


class ConfigCompiler(Protocol):
    """External machine config compiler."""

    def generate_base(self, spec: ClusterSpec, workdir: Path) -> BaseTemplates:
        ...

    def compile(self, base: Dict, patch: Dict, node: NodeIdentity) -> Dict:
        ...


class MachineConfigAssembler:
    """Writes one MachineConfig per declared node plus the CredentialBundle."""

    def __init__(self, compiler: ConfigCompiler, operator_talosconfig: Optional[Union[str, Path]] = None):
        self.compiler = compiler
        self.operator_talosconfig = Path(operator_talosconfig) if operator_talosconfig else None

    def _start_run(self, output_dir: Path) -> Path:
        output_dir.mkdir(parents=True, exist_ok=True)
        marker = output_dir / INCOMPLETE_MARKER
        marker.write_text("generation in progress or interrupted; re-run conctl generate configs\n")
        for pattern in NODE_FILE_PATTERNS:
            for stale in output_dir.glob(pattern):
                stale.unlink()
        for stale in output_dir.rglob(TALOSCONFIG_FILE):
            stale.unlink()
        return marker

    def _write_node(self, node: NodeIdentity, document: Dict, output_dir: Path) -> MachineConfig:
        path = write_text_atomic(output_dir / f"{node.name}.yaml", dump_yaml(document), mode=0o600)
        return MachineConfig(node=node, document=document, path=path)

    def write_credential_bundle(self, talosconfig: str, output_dir: Path) -> CredentialBundle:
        path = write_text_atomic(output_dir / TALOSCONFIG_FILE, talosconfig, mode=0o600)
        operator_path = None
        if self.operator_talosconfig is not None:
            self.operator_talosconfig.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(path, self.operator_talosconfig)
            self.operator_talosconfig.chmod(0o600)
            operator_path = self.operator_talosconfig
        return CredentialBundle(content=talosconfig, path=path, operator_path=operator_path)

    def assemble(
        self,
        spec: ClusterSpec,
        sequences: Dict[NodeRole, PatchLayerSequence],
        output_dir: Union[str, Path],
    ) -> Tuple[List[MachineConfig], CredentialBundle]:
        """Compile and write every node's config, then the client configuration.

        Raises:
            CompilerError: If the compiler rejects a node; names the node and role
        """
        output_dir = Path(output_dir)
        marker = self._start_run(output_dir)

        base = self.compiler.generate_base(spec, output_dir)
        logger.info("✓ Base configurations generated")

        configs: List[MachineConfig] = []
        for role in NodeRole:
            nodes = spec.nodes_for(role)
            if not nodes:
                continue
            logger.info(f"━━ {role.value} node configurations ({len(nodes)}) ━━")
            sequence = sequences.get(role)
            if sequence is None:
                raise InvalidConfig("No patch layers for role", role=role.value)
            for node in nodes:
                patch = sequence.merged_for(node)
                logger.debug(f"{node.name} merged patch: {redact_sensitive_data(patch)}")
                try:
                    document = self.compiler.compile(base.for_role(role), patch, node)
                except CompilerError as e:
                    e.node = e.node or node.name
                    e.role = e.role or role.value
                    logger.error(
                        f"❌ {node.name} ({node.ip}) failed after {len(configs)} node(s) were written: {e.message}"
                    )
                    raise
                configs.append(self._write_node(node, document, output_dir))
                logger.info(f"✓ {node.name} ({node.ip})")

        bundle = self.write_credential_bundle(base.talosconfig, output_dir)
        marker.unlink()
        logger.info(f"✓ Talos client config: {bundle.operator_path or bundle.path}")
        return configs, bundle
