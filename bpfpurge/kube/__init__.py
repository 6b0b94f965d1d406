from .client import ClusterClient, KubeClusterClient, get_cluster_client
from .objects import (
    CRD_KIND,
    ClusterObject,
    CustomResourceDefinition,
    GenericResource,
    ResourceIdentity,
    ResourceKind,
)
from .ratelimit import RateController, is_rate_limited, retry_after

__all__ = [
    "ClusterClient",
    "KubeClusterClient",
    "get_cluster_client",
    "CRD_KIND",
    "ClusterObject",
    "CustomResourceDefinition",
    "GenericResource",
    "ResourceIdentity",
    "ResourceKind",
    "RateController",
    "is_rate_limited",
    "retry_after",
]
