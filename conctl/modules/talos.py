"""Machine config compilation through ``talosctl``.

``talosctl gen config`` produces the base template per role and the client
configuration; ``talosctl machineconfig patch`` applies a merged patch to a
base template and validates the result. The cluster secrets bundle is
generated once per config directory and reused, so identical inputs
compile to identical documents.
"""
import logging
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from ..config import Config
from ..errors import CompilerError
from ..utils import dump_yaml, read_yaml_file, run_command, write_text_atomic, write_yaml_file
from .cluster_spec import ClusterSpec
from .models import BaseTemplates, NodeIdentity

logger = logging.getLogger("conctl.talos")

SECRETS_FILE = "secrets.yaml"

class TalosctlCompiler:
    """Compiles merged patches into machine configs with talosctl."""

    def __init__(self, talosctl_bin: Optional[str] = None, timeout: Optional[float] = None):
        self.talosctl_bin = talosctl_bin or Config.TALOSCTL_BIN
        self.timeout = timeout if timeout is not None else Config.TALOSCTL_TIMEOUT

    def _run(self, args: List[str], *, node: Optional[str] = None, role: Optional[str] = None) -> str:
        try:
            result = run_command([self.talosctl_bin] + args, timeout=self.timeout)
        except FileNotFoundError as e:
            raise CompilerError(f"talosctl binary not found: {self.talosctl_bin}", node=node, role=role) from e
        except subprocess.TimeoutExpired as e:
            raise CompilerError(
                f"talosctl {args[0]} timed out after {self.timeout}s", node=node, role=role
            ) from e

        if result.returncode != 0:
            raise CompilerError(
                f"talosctl {' '.join(args[:2])} failed: {result.stderr.strip()}", node=node, role=role
            )
        return result.stdout

    def ensure_secrets(self, workdir: Path) -> Path:
        """Generate the cluster secrets bundle unless one exists."""
        secrets = workdir / SECRETS_FILE
        if secrets.exists():
            logger.info(f"ℹ Reusing cluster secrets: {secrets}")
            return secrets
        workdir.mkdir(parents=True, exist_ok=True)
        logger.info("🔐 Generating cluster secrets...")
        self._run(["gen", "secrets", "--output-file", str(secrets)])
        secrets.chmod(0o600)
        return secrets

    def generate_base(self, spec: ClusterSpec, workdir: Union[str, Path]) -> BaseTemplates:
        """Produce the control-plane and worker base templates and the talosconfig.

        talosctl writes into a temporary directory that is removed on return, so
        the client configuration only reaches the output directory once the
        assembler has compiled every node.
        """
        workdir = Path(workdir)
        secrets = self.ensure_secrets(workdir)
        with tempfile.TemporaryDirectory(prefix="conctl-base-") as tmp:
            return self._generate_base(spec, secrets, Path(tmp))

    def _generate_base(self, spec: ClusterSpec, secrets: Path, base_dir: Path) -> BaseTemplates:
        args = [
            "gen", "config", spec.cluster_name, spec.endpoint,
            "--with-secrets", str(secrets),
            "--install-disk", spec.install_disk,
            "--install-image", spec.installer_image,
            "--output-dir", str(base_dir),
            "--force",
        ]
        if spec.vip:
            args += ["--additional-sans", spec.vip]
        logger.info(f"ℹ Cluster: {spec.cluster_name}")
        logger.info(f"ℹ Endpoint: {spec.endpoint}")
        self._run(args)

        try:
            return BaseTemplates(
                controlplane=read_yaml_file(base_dir / "controlplane.yaml"),
                worker=read_yaml_file(base_dir / "worker.yaml"),
                talosconfig=(base_dir / "talosconfig").read_text(encoding="utf-8"),
            )
        except (OSError, yaml.YAMLError) as e:
            raise CompilerError(f"talosctl gen config output unreadable: {e}") from e

    def compile(self, base: Dict[str, Any], patch: Dict[str, Any], node: NodeIdentity) -> Dict[str, Any]:
        """Apply ``patch`` to ``base``; talosctl validates the result.

        Raises:
            CompilerError: If talosctl rejects the document
        """
        with tempfile.TemporaryDirectory(prefix=f"conctl-{node.name}-") as tmp:
            base_path = write_yaml_file(Path(tmp) / "base.yaml", base)
            patch_path = write_text_atomic(Path(tmp) / "patch.yaml", dump_yaml(patch))
            output = self._run(
                ["machineconfig", "patch", str(base_path), "--patch", f"@{patch_path}"],
                node=node.name,
                role=node.role.value,
            )
        try:
            document = yaml.safe_load(output)
        except yaml.YAMLError as e:
            raise CompilerError(f"talosctl returned invalid YAML: {e}", node=node.name, role=node.role.value) from e
        if not isinstance(document, dict):
            raise CompilerError("talosctl returned an empty document", node=node.name, role=node.role.value)
        return document
