"""Chart rendering through ``helm template``."""
import logging
import subprocess
from pathlib import Path
from typing import Optional, Union

from ..config import Config
from ..errors import ManifestRenderError
from ..utils import run_command

logger = logging.getLogger("conctl.helm")


class HelmRenderer:
    """Renders a chart to manifest text without touching any cluster."""

    def __init__(
        self,
        helm_bin: Optional[str] = None,
        timeout: Optional[float] = None,
        repo_name: Optional[str] = None,
        repo_url: Optional[str] = None,
        namespace: Optional[str] = None,
        release_name: str = "cilium",
    ):
        self.helm_bin = helm_bin or Config.HELM_BIN
        self.timeout = timeout if timeout is not None else Config.HELM_TIMEOUT
        self.repo_name = repo_name or Config.CILIUM_REPO_NAME
        self.repo_url = repo_url or Config.CILIUM_REPO_URL
        self.namespace = namespace or Config.CILIUM_NAMESPACE
        self.release_name = release_name

    def _run(self, args, what: str) -> subprocess.CompletedProcess:
        try:
            return run_command([self.helm_bin] + list(args), timeout=self.timeout)
        except FileNotFoundError as e:
            raise ManifestRenderError(f"helm binary not found: {self.helm_bin}", fragment=what) from e
        except subprocess.TimeoutExpired as e:
            raise ManifestRenderError(f"helm timed out after {self.timeout}s", fragment=what) from e

    def add_repo(self) -> None:
        logger.info(f"ℹ Adding {self.repo_name} Helm repository...")
        # Already added is fine
        self._run(["repo", "add", self.repo_name, self.repo_url], "cni")
        result = self._run(["repo", "update", self.repo_name], "cni")
        if result.returncode != 0:
            raise ManifestRenderError(
                f"helm repo update {self.repo_name} failed: {result.stderr.strip()}", fragment="cni"
            )

    def render(self, chart: str, version: str, values: Union[str, Path]) -> str:
        """Template ``chart`` at ``version`` against a values file.

        Raises:
            ManifestRenderError: If the values file is missing or helm fails;
                the message carries helm's own diagnostic
        """
        values = Path(values)
        if not values.is_file():
            raise ManifestRenderError(f"Values file not found: {values}", fragment="cni")

        self.add_repo()
        logger.info(f"ℹ Generating {chart} manifests (version {version})...")
        result = self._run(
            [
                "template", self.release_name, chart,
                "--version", version,
                "--namespace", self.namespace,
                "--values", str(values),
            ],
            "cni",
        )
        if result.returncode != 0:
            raise ManifestRenderError(
                f"helm template {chart} {version} failed: {result.stderr.strip()}", fragment="cni"
            )
        if not result.stdout.strip():
            raise ManifestRenderError(f"helm template {chart} {version} produced no output", fragment="cni")
        return result.stdout
