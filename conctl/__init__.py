"""
conctl - Talos cluster configuration

Turns a declarative cluster description into per-node Talos machine
configurations:

- Cluster declaration loading and validation
- Generated secret patches (registry auth, CNI inline manifest)
- Deterministic layering of committed, secret and per-node patches
- Machine config assembly through talosctl
"""

__version__ = "0.1.0"
