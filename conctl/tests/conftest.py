from pathlib import Path

import pytest

from conctl.errors import CompilerError
from conctl.logging import clear_secrets
from conctl.modules.cluster_spec import DEFAULT_DECLARATION, cluster_spec_from_mapping, render_cluster_declaration
from conctl.modules.merge import deep_merge
from conctl.modules.models import BaseTemplates
from conctl.modules.secret_patches import RegistryCredentials

REPO_ROOT = Path(__file__).resolve().parents[2]

CILIUM_MANIFEST = """\
apiVersion: v1
kind: ServiceAccount
metadata:
  name: cilium
  namespace: kube-system
---
apiVersion: v1
kind: ConfigMap
metadata:
  name: cilium-config
  namespace: kube-system
data:
  tunnel-protocol: vxlan
"""

TALOSCONFIG = """\
context: talos-physical
contexts:
  talos-physical:
    endpoints:
      - 10.10.10.21
"""


class FakeRenderer:
    """Stands in for helm; records every call."""

    def __init__(self, manifest=CILIUM_MANIFEST, error=None):
        self.manifest = manifest
        self.error = error
        self.calls = []

    def render(self, chart, version, values):
        self.calls.append((chart, version, Path(values)))
        if self.error is not None:
            raise self.error
        return self.manifest


class FakeCompiler:
    """Stands in for talosctl: the patch is deep-merged onto a per-role base."""

    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.compiled = []

    def generate_base(self, spec, workdir):
        def base(machine_type):
            return {
                "version": "v1alpha1",
                "machine": {"type": machine_type, "install": {"disk": spec.install_disk}},
                "cluster": {"clusterName": spec.cluster_name, "controlPlane": {"endpoint": spec.endpoint}},
            }
        return BaseTemplates(controlplane=base("controlplane"), worker=base("worker"), talosconfig=TALOSCONFIG)

    def compile(self, base, patch, node):
        if node.name == self.fail_on:
            raise CompilerError("machine.network.interfaces: invalid")
        self.compiled.append(node.name)
        return deep_merge(base, patch)


@pytest.fixture(autouse=True)
def _reset_secrets():
    clear_secrets()
    yield
    clear_secrets()


@pytest.fixture
def declaration():
    """Default declaration: one control plane, two workers, no VIP."""
    values = dict(DEFAULT_DECLARATION)
    values["VIP_IP"] = ""
    values["WORKER_IPS"] = ["10.10.10.22", "10.10.10.23"]
    return values


@pytest.fixture
def spec(declaration):
    return cluster_spec_from_mapping(declaration)


@pytest.fixture
def ha_spec():
    values = dict(DEFAULT_DECLARATION)
    values["CONTROL_PLANE_IPS"] = ["10.10.10.21", "10.10.10.22", "10.10.10.23"]
    values["WORKER_IPS"] = ["10.10.10.24"]
    return cluster_spec_from_mapping(values)


@pytest.fixture
def credentials():
    return RegistryCredentials(username="octocat", token="ghp_s3cr3tT0ken")


@pytest.fixture
def config_dir(tmp_path, declaration):
    """A config directory holding a cluster.conf for ``declaration``."""
    directory = tmp_path / ".con"
    directory.mkdir()
    (directory / "cluster.conf").write_text(render_cluster_declaration(declaration))
    return directory


@pytest.fixture
def committed_dir(tmp_path):
    directory = tmp_path / "patches"
    (directory / "controlplane").mkdir(parents=True)
    (directory / "system.yaml").write_text(
        "machine:\n"
        "  install:\n"
        "    disk: {{ install_disk }}\n"
        "    image: {{ installer_image }}\n"
        "  kubelet:\n"
        "    nodeIP:\n"
        "      validSubnets:\n"
        "        - {{ network_cidr }}\n"
    )
    (directory / "storage.yaml").write_text(
        "machine:\n"
        "  disks:\n"
        "    - device: /dev/sdb\n"
    )
    (directory / "controlplane" / "vip.yaml").write_text(
        "machine:\n"
        "  network:\n"
        "    interfaces:\n"
        "      - interface: {{ interface }}\n"
        "        vip:\n"
        "          ip: {{ vip }}\n"
    )
    return directory


@pytest.fixture
def values_file(tmp_path):
    path = tmp_path / "cilium-values.yaml"
    path.write_text("ipam:\n  mode: kubernetes\n")
    return path
