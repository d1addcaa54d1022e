from .cluster_spec import ClusterSpec, load_cluster_spec
from .fragments import CommittedFragmentStore
from .merge import PatchLayerSequence, PatchMerger, deep_merge
from .models import (
    BaseTemplates,
    Classification,
    CredentialBundle,
    MachineConfig,
    NodeIdentity,
    NodeRole,
    PatchFragment,
    Scope,
)
from .secret_patches import RegistryCredentials, SecretPatchGenerator

__all__ = [
    'BaseTemplates',
    'Classification',
    'ClusterSpec',
    'CommittedFragmentStore',
    'CredentialBundle',
    'MachineConfig',
    'NodeIdentity',
    'NodeRole',
    'PatchFragment',
    'PatchLayerSequence',
    'PatchMerger',
    'RegistryCredentials',
    'Scope',
    'SecretPatchGenerator',
    'deep_merge',
    'load_cluster_spec',
]
