"""Configuration management for the conctl application."""
import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

class Config:
    """Application configuration with sensible defaults."""

    # Working directories
    CONFIG_DIR: Path = Path(os.getenv("CONFIG_DIR", ".con"))
    COMMITTED_PATCHES_DIR: Path = Path(os.getenv("CONCTL_COMMITTED_PATCHES_DIR", "setup/patches"))
    CILIUM_VALUES_FILE: Path = Path(os.getenv("CONCTL_CILIUM_VALUES_FILE", "setup/k8/cilium-values.yaml"))
    TALOSCONFIG_PATH: Path = Path(os.getenv("CONCTL_TALOSCONFIG_PATH", "talosconfig"))
    ENVHOST_FILE: Path = Path(os.getenv("CONCTL_ENVHOST_FILE", ".envhost"))

    # External tools
    HELM_BIN: str = os.getenv("CONCTL_HELM_BIN", "helm")
    TALOSCTL_BIN: str = os.getenv("CONCTL_TALOSCTL_BIN", "talosctl")

    # Timeouts (in seconds), passed through to the external tools
    HELM_TIMEOUT: int = int(os.getenv("CONCTL_HELM_TIMEOUT", "300"))
    TALOSCTL_TIMEOUT: int = int(os.getenv("CONCTL_TALOSCTL_TIMEOUT", "120"))

    # Cilium chart
    CILIUM_REPO_NAME: str = os.getenv("CONCTL_CILIUM_REPO_NAME", "cilium")
    CILIUM_REPO_URL: str = os.getenv("CONCTL_CILIUM_REPO_URL", "https://helm.cilium.io/")
    CILIUM_NAMESPACE: str = os.getenv("CONCTL_CILIUM_NAMESPACE", "kube-system")

    # Registry authentication
    REGISTRY_HOST: str = os.getenv("CONCTL_REGISTRY_HOST", "ghcr.io")
    BOOT_TIMEOUT: str = os.getenv("CONCTL_BOOT_TIMEOUT", "2m")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Security
    REDACT_KEYS: tuple = ("auth", "password", "secret", "token", "pat")

    @classmethod
    def patches_dir(cls) -> Path:
        """Ephemeral directory for generated secret patches."""
        return cls.CONFIG_DIR / "patches"

    @classmethod
    def configs_dir(cls) -> Path:
        """Output directory for base templates and per-node machine configs."""
        return cls.CONFIG_DIR / "configs"

    @classmethod
    def cluster_conf(cls) -> Path:
        return cls.CONFIG_DIR / "cluster.conf"

    @classmethod
    def validate(cls) -> None:
        """Validate timeouts and tool settings."""
        problems = []
        if cls.HELM_TIMEOUT <= 0:
            problems.append("CONCTL_HELM_TIMEOUT")
        if cls.TALOSCTL_TIMEOUT <= 0:
            problems.append("CONCTL_TALOSCTL_TIMEOUT")
        if not cls.HELM_BIN or not cls.TALOSCTL_BIN:
            problems.append("CONCTL_HELM_BIN/CONCTL_TALOSCTL_BIN")
        if problems:
            raise ValueError(f"Invalid configuration: {', '.join(problems)}")

# Don't validate on import to allow for dynamic configuration
# Call Config.validate() explicitly when needed
