"""End-to-end pipeline: load, generate secrets, merge, assemble.

Stages exchange typed values in memory. Files are written only at the
edges: secret fragments to the ephemeral patches directory, machine configs
and the client configuration to the configs directory.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..config import Config
from .assembler import ConfigCompiler, MachineConfigAssembler
from .cluster_spec import ClusterSpec, load_cluster_spec
from .fragments import CommittedFragmentStore
from .merge import PatchLayerSequence, PatchMerger
from .models import CredentialBundle, MachineConfig, NodeRole, PatchFragment
from .secret_patches import RegistryCredentials, SecretPatchGenerator, write_secret_fragments

logger = logging.getLogger("conctl.pipeline")


@dataclass
class PipelineSettings:
    """Locations used by one pipeline run."""
    cluster_conf: Path = field(default_factory=Config.cluster_conf)
    committed_dir: Path = Config.COMMITTED_PATCHES_DIR
    patches_dir: Path = field(default_factory=Config.patches_dir)
    configs_dir: Path = field(default_factory=Config.configs_dir)
    cilium_values: Optional[Path] = Config.CILIUM_VALUES_FILE
    operator_talosconfig: Optional[Path] = Config.TALOSCONFIG_PATH
    boot_timeout: Optional[str] = None


@dataclass
class PipelineResult:
    spec: ClusterSpec
    committed: List[PatchFragment]
    secret: List[PatchFragment]
    sequences: Dict[NodeRole, PatchLayerSequence] = field(default_factory=dict)
    secret_paths: List[Path] = field(default_factory=list)
    machine_configs: List[MachineConfig] = field(default_factory=list)
    credential_bundle: Optional[CredentialBundle] = None


class Pipeline:
    """Runs the stages in order, once, with no retries."""

    def __init__(self, settings: PipelineSettings, renderer, compiler: Optional[ConfigCompiler] = None):
        self.settings = settings
        self.renderer = renderer
        self.compiler = compiler

    def load(self, spec: Optional[ClusterSpec] = None) -> ClusterSpec:
        return spec if spec is not None else load_cluster_spec(self.settings.cluster_conf)

    def committed_store(self) -> CommittedFragmentStore:
        return CommittedFragmentStore(self.settings.committed_dir, self.settings.patches_dir)

    def generate_patches(
        self,
        credentials: RegistryCredentials,
        spec: Optional[ClusterSpec] = None,
    ) -> PipelineResult:
        """Loader and secret generator only; writes the secret fragments."""
        spec = self.load(spec)
        logger.info("🔧 Generating SECRET patches...")
        secret = SecretPatchGenerator(self.renderer, boot_timeout=self.settings.boot_timeout).generate(
            spec, credentials, self.settings.cilium_values
        )
        paths = write_secret_fragments(secret, self.settings.patches_dir, self.settings.committed_dir)
        return PipelineResult(spec=spec, committed=[], secret=secret, secret_paths=paths)

    def merge(self, credentials: RegistryCredentials, spec: Optional[ClusterSpec] = None) -> PipelineResult:
        """Everything up to and including the merger; nothing is compiled."""
        spec = self.load(spec)
        # Committed fragments are checked before the chart is rendered
        committed = self.committed_store().load(spec)
        for fragment in committed:
            logger.info(f"✓ {fragment.name}")
        result = self.generate_patches(credentials, spec)
        result.committed = committed
        result.sequences = PatchMerger().merge(result.spec, result.committed, result.secret)
        return result

    def generate_configs(
        self,
        credentials: RegistryCredentials,
        spec: Optional[ClusterSpec] = None,
    ) -> PipelineResult:
        """Full run: one MachineConfig per node plus the CredentialBundle."""
        if self.compiler is None:
            raise ValueError("generate_configs needs a config compiler")
        result = self.merge(credentials, spec)
        assembler = MachineConfigAssembler(self.compiler, self.settings.operator_talosconfig)
        result.machine_configs, result.credential_bundle = assembler.assemble(
            result.spec, result.sequences, self.settings.configs_dir
        )
        return result


def settings_from(
    config_dir: Optional[Union[str, Path]] = None,
    committed_dir: Optional[Union[str, Path]] = None,
    cilium_values: Optional[Union[str, Path]] = None,
    skip_cni: bool = False,
    talosconfig: Optional[Union[str, Path]] = None,
) -> PipelineSettings:
    """Build settings from CLI overrides, falling back to Config."""
    config_dir = Path(config_dir) if config_dir else Config.CONFIG_DIR
    return PipelineSettings(
        cluster_conf=config_dir / "cluster.conf",
        committed_dir=Path(committed_dir) if committed_dir else Config.COMMITTED_PATCHES_DIR,
        patches_dir=config_dir / "patches",
        configs_dir=config_dir / "configs",
        cilium_values=None if skip_cni else Path(cilium_values or Config.CILIUM_VALUES_FILE),
        operator_talosconfig=Path(talosconfig) if talosconfig else Config.TALOSCONFIG_PATH,
        boot_timeout=Config.BOOT_TIMEOUT,
    )
