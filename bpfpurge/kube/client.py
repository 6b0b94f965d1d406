import logging
import threading
from typing import Any, Dict, List, Optional, Protocol

from kubernetes import client, config, dynamic

from bpfpurge.errors import ClientInitError

from .objects import (
    CustomResourceDefinition,
    GenericResource,
    ResourceKind,
    crd_from_dict,
    resource_from_dict,
)

logger = logging.getLogger("bpfpurge.kube")


class ClusterClient(Protocol):
    """Blocking cluster API surface the purge engine relies on."""

    def list_crds(self, label_selector: Optional[str] = None) -> List[CustomResourceDefinition]: ...

    def get_crd(self, name: str) -> CustomResourceDefinition: ...

    def list_resources(self, kind: ResourceKind, label_selector: Optional[str] = None) -> List[GenericResource]: ...

    def get_resource(self, kind: ResourceKind, name: str, namespace: str = "") -> GenericResource: ...

    def delete_resource(
        self, kind: ResourceKind, name: str, namespace: str = "", grace_period_seconds: int = 0
    ) -> None: ...

    def update_finalizers(self, kind: ResourceKind, name: str, namespace: str, finalizers: List[str]) -> None: ...


class KubeClusterClient:
    """ClusterClient over the official client: typed API for CRDs, dynamic client for the rest."""

    def __init__(self, api_client: client.ApiClient, request_timeout: Optional[float] = 30):
        self.api_client = api_client
        self.request_timeout = request_timeout
        self.extensions = client.ApiextensionsV1Api(api_client)
        self.dynamic = dynamic.DynamicClient(api_client)
        self._apis: Dict[ResourceKind, Any] = {}
        self._apis_lock = threading.Lock()

    def _to_dict(self, obj) -> Dict[str, Any]:
        if isinstance(obj, dict):
            return obj
        # typed models carry openapi_types on the class; dynamic ResourceInstances do not
        if isinstance(getattr(type(obj), "openapi_types", None), dict):
            return self.api_client.sanitize_for_serialization(obj)
        return obj.to_dict()

    def _api(self, kind: ResourceKind):
        # resource discovery is not thread-safe; resolve each kind once
        with self._apis_lock:
            api = self._apis.get(kind)
            if api is None:
                api = self.dynamic.resources.get(api_version=kind.api_version, kind=kind.kind)
                self._apis[kind] = api
            return api

    def list_crds(self, label_selector: Optional[str] = None) -> List[CustomResourceDefinition]:
        kwargs: Dict[str, Any] = {"_request_timeout": self.request_timeout}
        if label_selector:
            kwargs["label_selector"] = label_selector
        crd_list = self.extensions.list_custom_resource_definition(**kwargs)
        return [crd_from_dict(self._to_dict(item)) for item in crd_list.items]

    def get_crd(self, name: str) -> CustomResourceDefinition:
        obj = self.extensions.read_custom_resource_definition(name, _request_timeout=self.request_timeout)
        return crd_from_dict(self._to_dict(obj))

    def list_resources(self, kind: ResourceKind, label_selector: Optional[str] = None) -> List[GenericResource]:
        kwargs: Dict[str, Any] = {"_request_timeout": self.request_timeout}
        if label_selector:
            kwargs["label_selector"] = label_selector
        listing = self._to_dict(self._api(kind).get(**kwargs))
        return [resource_from_dict(kind, item) for item in listing.get("items") or []]

    def get_resource(self, kind: ResourceKind, name: str, namespace: str = "") -> GenericResource:
        obj = self._api(kind).get(name=name, namespace=namespace or None, _request_timeout=self.request_timeout)
        return resource_from_dict(kind, self._to_dict(obj))

    def delete_resource(
        self, kind: ResourceKind, name: str, namespace: str = "", grace_period_seconds: int = 0
    ) -> None:
        self._api(kind).delete(
            name=name,
            namespace=namespace or None,
            grace_period_seconds=grace_period_seconds,
            _request_timeout=self.request_timeout,
        )

    def update_finalizers(self, kind: ResourceKind, name: str, namespace: str, finalizers: List[str]) -> None:
        api = self._api(kind)
        obj = self._to_dict(api.get(name=name, namespace=namespace or None, _request_timeout=self.request_timeout))
        obj.setdefault("metadata", {})["finalizers"] = list(finalizers)
        api.replace(body=obj, name=name, namespace=namespace or None, _request_timeout=self.request_timeout)


def get_cluster_client(request_timeout: Optional[float] = 30) -> KubeClusterClient:
    try:
        try:
            config.load_incluster_config()
            logger.debug("Using in-cluster service account configuration")
        except config.ConfigException:
            config.load_kube_config()
            logger.debug("Using local kubeconfig")
        return KubeClusterClient(client.ApiClient(), request_timeout=request_timeout)
    except Exception as e:
        raise ClientInitError(f"failed to create cluster client: {e}") from e


__all__ = ["ClusterClient", "KubeClusterClient", "get_cluster_client"]
