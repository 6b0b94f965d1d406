import enum
from typing import Iterable, List, Tuple

from bpfpurge.kube.objects import CRD_KIND, ResourceIdentity


class Category(enum.Enum):
    CRD = "crd"
    INSTANCE = "instance"
    OTHER = "other"


def deduplicate(resources: Iterable[ResourceIdentity]) -> List[ResourceIdentity]:
    """Drop repeated identities, keeping first-seen order."""
    seen = set()
    result: List[ResourceIdentity] = []
    for resource in resources:
        if resource.key in seen:
            continue
        seen.add(resource.key)
        result.append(resource)
    return result


def category_of(resource: ResourceIdentity, instance_plurals: Iterable[str]) -> Category:
    if resource.resource_kind.plural == CRD_KIND.plural:
        return Category.CRD
    if resource.resource_kind.plural in set(instance_plurals):
        return Category.INSTANCE
    return Category.OTHER


def categorize(
    resources: Iterable[ResourceIdentity], instance_plurals: Iterable[str]
) -> Tuple[List[ResourceIdentity], List[ResourceIdentity], List[ResourceIdentity]]:
    plurals = set(instance_plurals)
    crds: List[ResourceIdentity] = []
    instances: List[ResourceIdentity] = []
    others: List[ResourceIdentity] = []
    for resource in resources:
        cat = category_of(resource, plurals)
        if cat is Category.CRD:
            crds.append(resource)
        elif cat is Category.INSTANCE:
            instances.append(resource)
        else:
            others.append(resource)
    return crds, instances, others
