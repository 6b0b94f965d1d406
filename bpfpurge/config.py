import copy
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from bpfpurge.errors import ProfileError
from bpfpurge.kube.objects import ResourceKind

logger = logging.getLogger("bpfpurge.config")

PROFILE_ENV = "BPFPURGE_PROFILE"
TIMEOUT_ENV = "BPFPURGE_TIMEOUT_SECONDS"
REQUEST_TIMEOUT_ENV = "BPFPURGE_REQUEST_TIMEOUT"

_DEFAULT_PROFILE = """
app: bpfman
labelSelectors:
  - app.kubernetes.io/name={app}
  - app.kubernetes.io/part-of={app}
  - app={app}
crdNames:
  - bpfapplications.bpfman.io
  - bpfapplicationstates.bpfman.io
  - clusterbpfapplications.bpfman.io
  - clusterbpfapplicationstates.bpfman.io
nameFragments:
  - bpfapplication
  - xdpprogram
  - tcprogram
  - tracepointprogram
  - kprobeprogram
  - uprobeprogram
  - fentryprogram
  - fexitprogram
instancePlurals:
  - bpfapplications
  - bpfapplicationstates
  - clusterbpfapplications
  - clusterbpfapplicationstates
resourceTypes:
  - {group: "", version: v1, plural: services, kind: Service}
  - {group: "", version: v1, plural: serviceaccounts, kind: ServiceAccount}
  - {group: "", version: v1, plural: configmaps, kind: ConfigMap}
  - {group: "", version: v1, plural: secrets, kind: Secret}
  - {group: "", version: v1, plural: namespaces, kind: Namespace}
  - {group: apps, version: v1, plural: deployments, kind: Deployment}
  - {group: apps, version: v1, plural: daemonsets, kind: DaemonSet}
  - {group: apps, version: v1, plural: replicasets, kind: ReplicaSet}
  - {group: rbac.authorization.k8s.io, version: v1, plural: roles, kind: Role}
  - {group: rbac.authorization.k8s.io, version: v1, plural: rolebindings, kind: RoleBinding}
  - {group: rbac.authorization.k8s.io, version: v1, plural: clusterroles, kind: ClusterRole}
  - {group: rbac.authorization.k8s.io, version: v1, plural: clusterrolebindings, kind: ClusterRoleBinding}
  - {group: operators.coreos.com, version: v1alpha1, plural: subscriptions, kind: Subscription}
  - {group: operators.coreos.com, version: v1alpha1, plural: clusterserviceversions, kind: ClusterServiceVersion}
  - {group: operators.coreos.com, version: v1alpha1, plural: catalogsources, kind: CatalogSource}
  - {group: operators.coreos.com, version: v1, plural: operatorgroups, kind: OperatorGroup}
  - {group: monitoring.coreos.com, version: v1, plural: servicemonitors, kind: ServiceMonitor}
options:
  maxConcurrency: 10
  timeoutSeconds: 600
  requestTimeoutSeconds: 30
rate:
  initialDelaySeconds: 0.1
  minDelaySeconds: 0.05
  maxDelaySeconds: 5
  maxAttempts: 3
"""


@dataclass
class RateSettings:
    initial_delay: float = 0.1
    min_delay: float = 0.05
    max_delay: float = 5.0
    max_attempts: int = 3


@dataclass
class PurgeProfile:
    app: str
    label_selectors: List[str]
    crd_names: List[str]
    name_fragments: List[str]
    instance_plurals: List[str]
    resource_types: List[ResourceKind]
    max_concurrency: int = 10
    timeout_seconds: float = 600
    request_timeout: float = 30
    rate: RateSettings = field(default_factory=RateSettings)

    def matches_name(self, *values: str) -> bool:
        """Naming-convention heuristic: any value contains the app token or a known fragment."""
        tokens = [self.app.lower()] + [f.lower() for f in self.name_fragments]
        for value in values:
            lowered = (value or "").lower()
            if any(t and t in lowered for t in tokens):
                return True
        return False


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _read_yaml(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ProfileError(f"cannot read profile {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ProfileError(f"invalid YAML in profile {path}: {e}") from e
    if not isinstance(data, dict):
        raise ProfileError(f"profile {path} must be a mapping")
    return data


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    try:
        return float(raw)
    except ValueError as e:
        raise ProfileError(f"{name} must be a number, got '{raw}'") from e


def _first_set(*values):
    return next(v for v in values if v is not None)


def _resource_kind(entry: Any) -> ResourceKind:
    if not isinstance(entry, dict):
        raise ProfileError(f"resourceTypes entry must be a mapping, got {entry!r}")
    missing = [k for k in ("version", "plural", "kind") if not entry.get(k)]
    if missing:
        raise ProfileError(f"resourceTypes entry {entry!r} missing {', '.join(missing)}")
    return ResourceKind(
        group=str(entry.get("group") or ""),
        version=str(entry["version"]),
        plural=str(entry["plural"]),
        kind=str(entry["kind"]),
    )


def _str_list(data: Dict[str, Any], key: str) -> List[str]:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise ProfileError(f"{key} must be a list")
    return [str(v) for v in value]


def load_profile(
    path: Optional[str] = None,
    app: Optional[str] = None,
    timeout_seconds: Optional[float] = None,
) -> PurgeProfile:
    data = yaml.safe_load(_DEFAULT_PROFILE)
    path = path or os.getenv(PROFILE_ENV)
    if path:
        logger.info("Loading purge profile from %s", path)
        data = _deep_merge(data, _read_yaml(path))
    if app:
        data["app"] = app

    app_name = str(data.get("app") or "").strip()
    if not app_name:
        raise ProfileError("app must be a non-empty string")

    options = data.get("options") or {}
    rate = data.get("rate") or {}

    timeout = _first_set(timeout_seconds, _env_float(TIMEOUT_ENV), options.get("timeoutSeconds"), 600)
    request_timeout = _first_set(_env_float(REQUEST_TIMEOUT_ENV), options.get("requestTimeoutSeconds"), 30)

    try:
        profile = PurgeProfile(
            app=app_name,
            label_selectors=[s.replace("{app}", app_name) for s in _str_list(data, "labelSelectors")],
            crd_names=[n.lower() for n in _str_list(data, "crdNames")],
            name_fragments=_str_list(data, "nameFragments"),
            instance_plurals=_str_list(data, "instancePlurals"),
            resource_types=[_resource_kind(e) for e in data.get("resourceTypes") or []],
            max_concurrency=int(options.get("maxConcurrency", 10)),
            timeout_seconds=float(timeout),
            request_timeout=float(request_timeout),
            rate=RateSettings(
                initial_delay=float(rate.get("initialDelaySeconds", 0.1)),
                min_delay=float(rate.get("minDelaySeconds", 0.05)),
                max_delay=float(rate.get("maxDelaySeconds", 5)),
                max_attempts=int(rate.get("maxAttempts", 3)),
            ),
        )
    except (TypeError, ValueError) as e:
        raise ProfileError(f"invalid profile value: {e}") from e

    if profile.max_concurrency < 1:
        raise ProfileError("options.maxConcurrency must be >= 1")
    if profile.timeout_seconds <= 0 or profile.request_timeout <= 0:
        raise ProfileError("timeouts must be positive")
    if profile.rate.max_attempts < 1:
        raise ProfileError("rate.maxAttempts must be >= 1")
    return profile
