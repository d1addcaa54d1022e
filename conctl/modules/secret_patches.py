"""Generated secret patches.

Two fragments are produced on every run and never committed:

* registry authentication for pulling private images at boot, and
* the CNI, rendered from its Helm chart and embedded as an inline manifest
  so Talos applies it before any API server is reachable.

Both are written to the ephemeral config directory only. The registry
token and the encoded auth string are registered with the log redaction
filter before anything else happens with them.
"""
import base64
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional, Union

import yaml
from dotenv import dotenv_values

from ..config import Config
from ..errors import InvalidConfig, MissingCredentials
from ..logging import register_secret
from ..utils import dump_yaml, is_within, write_text_atomic
from .cluster_spec import ClusterSpec
from .fragments import validate_fragment_content
from .models import Classification, PatchFragment, Scope

logger = logging.getLogger("conctl.secret_patches")

USERNAME_VAR = "GITHUB_USERNAME"
TOKEN_VAR = "GHCR_PAT"

CNI_FRAGMENT = "cilium"
CNI_CHART = "cilium/cilium"
# Columns of whitespace before each manifest line inside the block scalar
INLINE_MANIFEST_INDENT = 8

CNI_PATCH_HEADER = """\
cluster:
  network:
    cni:
      name: none
  proxy:
    disabled: true
  inlineManifests:
    - name: {name}
      contents: |
"""


@dataclass(frozen=True)
class RegistryCredentials:
    """Username/token pair for a container registry."""
    username: str
    token: str
    registry: str = "ghcr.io"

    def __post_init__(self):
        register_secret(self.token)
        register_secret(self.encoded())

    def encoded(self) -> str:
        return base64.b64encode(f"{self.username}:{self.token}".encode()).decode()

    def __repr__(self) -> str:
        return f"RegistryCredentials(username={self.username!r}, token='[REDACTED]', registry={self.registry!r})"


def load_registry_credentials(
    environ: Optional[Mapping[str, str]] = None,
    envhost_path: Optional[Union[str, Path]] = None,
    registry: Optional[str] = None,
) -> RegistryCredentials:
    """Read registry credentials from an injected mapping, falling back to an .envhost file.

    Raises:
        MissingCredentials: If the username or token cannot be found
    """
    env = os.environ if environ is None else environ
    username = env.get(USERNAME_VAR) or ""
    token = env.get(TOKEN_VAR) or ""

    if not (username and token) and envhost_path is not None:
        envhost_path = Path(envhost_path)
        if envhost_path.is_file():
            logger.info(f"ℹ {USERNAME_VAR}/{TOKEN_VAR} not set in environment, loading from {envhost_path}")
            values = dotenv_values(envhost_path)
            username = username or values.get(USERNAME_VAR) or ""
            token = token or values.get(TOKEN_VAR) or ""

    missing = [name for name, value in ((USERNAME_VAR, username), (TOKEN_VAR, token)) if not value]
    if missing:
        raise MissingCredentials(
            f"{' and '.join(missing)} must be set (environment or {envhost_path or '.envhost'})",
            fragment="registry-auth",
        )
    return RegistryCredentials(username=username, token=token, registry=registry or Config.REGISTRY_HOST)


def registry_fragment_name(registry: str) -> str:
    return f"{registry.split('.')[0]}-auth"


def build_registry_auth_fragment(credentials: RegistryCredentials, boot_timeout: Optional[str] = None) -> PatchFragment:
    content = {
        "machine": {
            "registries": {
                "config": {
                    credentials.registry: {
                        "auth": {"auth": credentials.encoded()},
                    }
                }
            },
            "time": {"bootTimeout": boot_timeout or Config.BOOT_TIMEOUT},
        }
    }
    return PatchFragment(
        name=registry_fragment_name(credentials.registry),
        classification=Classification.GENERATED_SECRET,
        content=content,
        scope=Scope.cluster_wide(),
    )


def indent_manifest(manifest: str, width: int = INLINE_MANIFEST_INDENT) -> str:
    """Prefix every line with ``width`` spaces."""
    prefix = " " * width
    return "".join(f"{prefix}{line}\n" for line in manifest.split("\n"))


def render_cni_patch_text(manifest: str, name: str = CNI_FRAGMENT) -> str:
    """Talos patch text embedding ``manifest`` as an inline manifest block."""
    body = "---\n" + manifest.rstrip()
    return CNI_PATCH_HEADER.format(name=name) + indent_manifest(body)


def build_cni_fragment(manifest: str, name: str = CNI_FRAGMENT) -> PatchFragment:
    text = render_cni_patch_text(manifest, name)
    try:
        content = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise InvalidConfig(f"Rendered CNI manifest cannot be embedded: {e}", fragment=name) from e
    return PatchFragment(
        name=name,
        classification=Classification.GENERATED_SECRET,
        content=validate_fragment_content(name, content),
        scope=Scope.cluster_wide(),
        source_text=text,
    )


class SecretPatchGenerator:
    """Produces the registry-auth and CNI fragments for one run."""

    def __init__(self, renderer, chart: str = CNI_CHART, boot_timeout: Optional[str] = None):
        self.renderer = renderer
        self.chart = chart
        self.boot_timeout = boot_timeout

    def generate(
        self,
        spec: ClusterSpec,
        credentials: RegistryCredentials,
        values_path: Optional[Union[str, Path]],
    ) -> List[PatchFragment]:
        """Build both fragments; the CNI one is skipped when no values file is configured.

        Raises:
            ManifestRenderError: If chart templating fails
        """
        fragments = [build_registry_auth_fragment(credentials, self.boot_timeout)]
        logger.info(f"🔧 Generated {credentials.registry} authentication patch")

        if values_path is None:
            logger.warning("⚠ No Cilium values file configured - skipping CNI patch generation")
            return fragments

        logger.info(f"ℹ Using values file: {values_path}")
        manifest = self.renderer.render(self.chart, spec.cilium_version, values_path)
        fragments.append(build_cni_fragment(manifest))
        logger.info(f"🔧 Generated Cilium patch (version {spec.cilium_version})")
        return fragments


def write_secret_fragments(
    fragments: List[PatchFragment],
    ephemeral_dir: Union[str, Path],
    committed_dir: Optional[Union[str, Path]] = None,
) -> List[Path]:
    """Write generated fragments to the gitignored output directory.

    Raises:
        InvalidConfig: If the output directory lies inside the committed
            patches directory, or a fragment is not a generated secret
    """
    ephemeral_dir = Path(ephemeral_dir)
    if committed_dir is not None and is_within(ephemeral_dir, Path(committed_dir)):
        raise InvalidConfig(f"Refusing to write secret patches inside committed directory {committed_dir}")

    ephemeral_dir.mkdir(parents=True, exist_ok=True)
    gitignore = ephemeral_dir / ".gitignore"
    if not gitignore.exists():
        gitignore.write_text("*\n", encoding="utf-8")

    paths = []
    for fragment in fragments:
        if not fragment.is_secret:
            raise InvalidConfig("Only generated secret fragments belong here", fragment=fragment.name)
        text = fragment.source_text if fragment.source_text is not None else dump_yaml(fragment.content)
        path = write_text_atomic(ephemeral_dir / f"{fragment.name}.yaml", text, mode=0o600)
        logger.info(f"✓ {fragment.name} patch written: {path}")
        paths.append(path)
    return paths
