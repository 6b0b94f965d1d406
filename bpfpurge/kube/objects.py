from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from jsonpath_ng import parse as jp_parse


@dataclass(frozen=True)
class ResourceKind:
    group: str
    version: str
    plural: str
    kind: str = ""

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    @property
    def triple(self):
        return (self.group, self.version, self.plural)

    def __str__(self) -> str:
        if self.group:
            return f"{self.group}/{self.version}, Resource={self.plural}"
        return f"{self.version}, Resource={self.plural}"


CRD_KIND = ResourceKind(
    group="apiextensions.k8s.io",
    version="v1",
    plural="customresourcedefinitions",
    kind="CustomResourceDefinition",
)


@dataclass(frozen=True)
class ResourceIdentity:
    """One candidate object to delete.

    Two identities are the same logical resource when the API triple,
    namespace, name and display kind all match, regardless of which
    discovery strategy produced them.
    """

    resource_kind: ResourceKind
    name: str
    namespace: str = ""
    display_kind: str = ""

    def __post_init__(self):
        if not self.name:
            raise ValueError("resource name is required")

    @property
    def key(self):
        return (self.resource_kind.triple, self.namespace, self.name, self.display_kind)

    @property
    def location(self) -> str:
        kind = self.display_kind or self.resource_kind.kind or self.resource_kind.plural
        if self.namespace:
            return f"{kind}/{self.name} in namespace {self.namespace}"
        return f"{kind}/{self.name} (cluster-scoped)"


@dataclass
class CustomResourceDefinition:
    name: str
    group: str
    version: str
    plural: str
    kind: str
    labels: Dict[str, str] = field(default_factory=dict)

    def served_kind(self) -> ResourceKind:
        return ResourceKind(group=self.group, version=self.version, plural=self.plural, kind=self.kind)

    def identity(self) -> ResourceIdentity:
        return ResourceIdentity(CRD_KIND, self.name, "", CRD_KIND.kind)


@dataclass
class GenericResource:
    resource_kind: ResourceKind
    name: str
    namespace: str = ""
    finalizers: List[str] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict)

    def identity(self, display_kind: Optional[str] = None) -> ResourceIdentity:
        return ResourceIdentity(
            self.resource_kind,
            self.name,
            self.namespace,
            display_kind or self.resource_kind.kind or self.raw.get("kind", ""),
        )


ClusterObject = Union[CustomResourceDefinition, GenericResource]


_NAME = jp_parse("metadata.name")
_NAMESPACE = jp_parse("metadata.namespace")
_LABELS = jp_parse("metadata.labels")
_FINALIZERS = jp_parse("metadata.finalizers[*]")
_CRD_GROUP = jp_parse("spec.group")
_CRD_FIRST_VERSION = jp_parse("spec.versions[0].name")
_CRD_PLURAL = jp_parse("spec.names.plural")
_CRD_KIND = jp_parse("spec.names.kind")


def _first(expr, data: Dict[str, Any], default=None):
    matches = expr.find(data)
    if not matches or matches[0].value is None:
        return default
    return matches[0].value


def crd_from_dict(data: Dict[str, Any]) -> CustomResourceDefinition:
    name = _first(_NAME, data)
    if not name:
        raise ValueError("CustomResourceDefinition without metadata.name")
    return CustomResourceDefinition(
        name=name,
        group=_first(_CRD_GROUP, data, ""),
        version=_first(_CRD_FIRST_VERSION, data, "v1"),
        plural=_first(_CRD_PLURAL, data, ""),
        kind=_first(_CRD_KIND, data, ""),
        labels=dict(_first(_LABELS, data, {}) or {}),
    )


def resource_from_dict(kind: ResourceKind, data: Dict[str, Any]) -> GenericResource:
    name = _first(_NAME, data)
    if not name:
        raise ValueError(f"{kind.plural} item without metadata.name")
    return GenericResource(
        resource_kind=kind,
        name=name,
        namespace=_first(_NAMESPACE, data, "") or "",
        finalizers=[m.value for m in _FINALIZERS.find(data)],
        labels=dict(_first(_LABELS, data, {}) or {}),
        raw=data,
    )
