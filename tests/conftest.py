"""Shared fixtures: an in-memory cluster standing in for the Kubernetes API."""

import threading
import time
from typing import Dict, List, Optional, Tuple

import pytest

from bpfpurge.config import RateSettings, load_profile
from bpfpurge.kube.objects import (
    CRD_KIND,
    CustomResourceDefinition,
    GenericResource,
    ResourceKind,
)
from bpfpurge.main import build_context

CONFIGMAPS = ResourceKind("", "v1", "configmaps", "ConfigMap")
SERVICES = ResourceKind("", "v1", "services", "Service")
NAMESPACES = ResourceKind("", "v1", "namespaces", "Namespace")
DEPLOYMENTS = ResourceKind("apps", "v1", "deployments", "Deployment")
CLUSTERROLES = ResourceKind("rbac.authorization.k8s.io", "v1", "clusterroles", "ClusterRole")
SUBSCRIPTIONS = ResourceKind("operators.coreos.com", "v1alpha1", "subscriptions", "Subscription")


class NotFound(Exception):
    status = 404


class FakeCluster:
    """Thread-safe in-memory ClusterClient.

    Objects carrying finalizers refuse deletion until the finalizers are
    cleared, which is how a stuck controller-owned object looks from the
    purge tool's side.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.crds: Dict[str, CustomResourceDefinition] = {}
        self.objects: Dict[Tuple, GenericResource] = {}
        self.calls: List[Tuple] = []
        self.delete_failures: Dict[Tuple, int] = {}
        self.update_failures = set()
        self.list_failures = set()
        self.unserved_plurals = set()
        self.list_delay = 0.0
        self.list_gate: Optional[threading.Event] = None
        self.in_flight = 0
        self.peak_in_flight = 0

    @staticmethod
    def key(kind: ResourceKind, name: str, namespace: str = ""):
        return (kind.triple, namespace or "", name)

    def add_crd(self, name, group, plural, kind, labels=None, version="v1"):
        crd = CustomResourceDefinition(
            name=name, group=group, version=version, plural=plural, kind=kind, labels=dict(labels or {})
        )
        self.crds[name] = crd
        return crd

    def add(self, kind: ResourceKind, name, namespace="", labels=None, finalizers=None):
        obj = GenericResource(
            resource_kind=kind,
            name=name,
            namespace=namespace,
            finalizers=list(finalizers or []),
            labels=dict(labels or {}),
            raw={"kind": kind.kind, "metadata": {"name": name, "namespace": namespace}},
        )
        self.objects[self.key(kind, name, namespace)] = obj
        return obj

    def exists(self, kind, name, namespace=""):
        if kind.triple == CRD_KIND.triple:
            return name in self.crds
        return self.key(kind, name, namespace) in self.objects

    def deletes(self) -> List[Tuple]:
        return [c for c in self.calls if c[0] == "delete"]

    def _record(self, *call):
        with self._lock:
            self.calls.append(call)

    @staticmethod
    def _selected(labels, selector):
        if not selector:
            return True
        for term in selector.split(","):
            k, _, v = term.partition("=")
            if labels.get(k.strip()) != v.strip():
                return False
        return True

    def _enter_list(self):
        with self._lock:
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        if self.list_gate is not None:
            self.list_gate.wait(timeout=10)
        if self.list_delay:
            time.sleep(self.list_delay)

    def _leave_list(self):
        with self._lock:
            self.in_flight -= 1

    def list_crds(self, label_selector=None):
        self._record("list_crds", label_selector)
        self._enter_list()
        try:
            if ("customresourcedefinitions", label_selector) in self.list_failures:
                raise RuntimeError("crd list failed")
            with self._lock:
                return [c for c in self.crds.values() if self._selected(c.labels, label_selector)]
        finally:
            self._leave_list()

    def get_crd(self, name):
        self._record("get_crd", name)
        with self._lock:
            if name not in self.crds:
                raise NotFound(f'customresourcedefinitions "{name}" not found')
            return self.crds[name]

    def list_resources(self, kind, label_selector=None):
        self._record("list", kind.plural, label_selector)
        self._enter_list()
        try:
            if kind.plural in self.unserved_plurals:
                raise NotFound(f"the server could not find the requested resource ({kind.plural})")
            if kind.plural in self.list_failures or (kind.plural, label_selector) in self.list_failures:
                raise RuntimeError(f"list {kind.plural} failed")
            with self._lock:
                return [
                    o
                    for o in self.objects.values()
                    if o.resource_kind.triple == kind.triple and self._selected(o.labels, label_selector)
                ]
        finally:
            self._leave_list()

    def get_resource(self, kind, name, namespace=""):
        self._record("get", kind.plural, name, namespace)
        with self._lock:
            if kind.triple == CRD_KIND.triple and name in self.crds:
                return GenericResource(resource_kind=CRD_KIND, name=name)
            obj = self.objects.get(self.key(kind, name, namespace))
            if obj is None:
                raise NotFound(f'{kind.plural} "{name}" not found')
            return obj

    def delete_resource(self, kind, name, namespace="", grace_period_seconds=0):
        self._record("delete", kind.plural, name, namespace, grace_period_seconds)
        key = self.key(kind, name, namespace)
        with self._lock:
            remaining = self.delete_failures.get(key, 0)
            if remaining:
                if remaining > 0:
                    self.delete_failures[key] = remaining - 1
                raise RuntimeError(f'delete {kind.plural} "{name}" failed')
            if kind.triple == CRD_KIND.triple:
                if self.crds.pop(name, None) is None:
                    raise NotFound(f'customresourcedefinitions "{name}" not found')
                return
            obj = self.objects.get(key)
            if obj is None:
                raise NotFound(f'{kind.plural} "{name}" not found')
            if obj.finalizers:
                raise RuntimeError(f'{kind.plural} "{name}" is blocked by finalizers {obj.finalizers}')
            del self.objects[key]

    def update_finalizers(self, kind, name, namespace, finalizers):
        self._record("update_finalizers", kind.plural, name, namespace, list(finalizers))
        key = self.key(kind, name, namespace)
        with self._lock:
            if key in self.update_failures:
                raise RuntimeError(f'update {kind.plural} "{name}" conflict')
            obj = self.objects.get(key)
            if obj is None:
                raise NotFound(f'{kind.plural} "{name}" not found')
            obj.finalizers = list(finalizers)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("BPFPURGE_PROFILE", "BPFPURGE_TIMEOUT_SECONDS", "BPFPURGE_REQUEST_TIMEOUT", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def cluster():
    return FakeCluster()


@pytest.fixture
def profile():
    p = load_profile()
    p.rate = RateSettings(initial_delay=0.001, min_delay=0.001, max_delay=0.01, max_attempts=3)
    return p


@pytest.fixture
def ctx(cluster, profile):
    return build_context(profile, cluster)
