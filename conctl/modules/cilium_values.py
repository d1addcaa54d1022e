"""Default Helm values for Cilium on Talos.

Talos ships without kube-proxy when the CNI patch disables it, so Cilium
takes over service handling and talks to the API server through KubePrism
on localhost:7445.
"""
from pathlib import Path
from typing import Any, Dict, Union

from ..utils import write_yaml_file

DEFAULT_CILIUM_VALUES: Dict[str, Any] = {
    "ipam": {"mode": "kubernetes"},
    "kubeProxyReplacement": True,
    "securityContext": {
        "capabilities": {
            "ciliumAgent": [
                "CHOWN", "KILL", "NET_ADMIN", "NET_RAW", "IPC_LOCK", "SYS_ADMIN",
                "SYS_RESOURCE", "DAC_OVERRIDE", "FOWNER", "SETGID", "SETUID",
            ],
            "cleanCiliumState": ["NET_ADMIN", "SYS_ADMIN", "SYS_RESOURCE"],
        }
    },
    "cgroup": {
        "autoMount": {"enabled": False},
        "hostRoot": "/sys/fs/cgroup",
    },
    "k8sServiceHost": "localhost",
    "k8sServicePort": 7445,
    "hubble": {
        "enabled": True,
        "relay": {"enabled": True},
        "ui": {"enabled": True},
    },
    "tunnelProtocol": "vxlan",
    "cni": {"chainingMode": "none", "exclusive": True},
    "gatewayAPI": {
        "enabled": True,
        "enableAlpn": True,
        "enableAppProtocol": True,
    },
}


def write_default_cilium_values(path: Union[str, Path]) -> Path:
    return write_yaml_file(path, DEFAULT_CILIUM_VALUES, mode=0o644)
