import asyncio

from conftest import CLUSTERROLES, CONFIGMAPS, DEPLOYMENTS, NAMESPACES, SUBSCRIPTIONS

from bpfpurge.engine import discovery
from bpfpurge.engine.discovery import (
    crd_instances,
    crds_by_label,
    crds_by_name,
    discover_all,
    resources_by_label,
    resources_by_name,
)
from bpfpurge.kube.objects import CRD_KIND, ResourceKind

WIDGETS = ResourceKind("example.io", "v1", "widgets", "Widget")


def _names(resources):
    return sorted((r.resource_kind.plural, r.namespace, r.name) for r in resources)


def test_crds_found_by_label(cluster, ctx):
    cluster.add_crd("widgets.example.io", "example.io", "widgets", "Widget", labels={"app.kubernetes.io/part-of": "bpfman"})
    cluster.add_crd("gadgets.example.io", "example.io", "gadgets", "Gadget")

    found = asyncio.run(crds_by_label(ctx))

    assert [c.name for c in found] == ["widgets.example.io"]


def test_crds_found_by_name_group_and_allow_list(cluster, ctx):
    cluster.add_crd("bpfapplications.bpfman.io", "bpfman.io", "bpfapplications", "BpfApplication")
    cluster.add_crd("xdpprograms.example.io", "example.io", "xdpprograms", "XdpProgram")
    cluster.add_crd("things.bpfman.dev", "bpfman.dev", "things", "Thing")
    cluster.add_crd("certificates.cert-manager.io", "cert-manager.io", "certificates", "Certificate")

    found = asyncio.run(crds_by_name(ctx))

    assert sorted(c.name for c in found) == [
        "bpfapplications.bpfman.io",
        "things.bpfman.dev",
        "xdpprograms.example.io",
    ]


def test_crd_instances_span_namespaces(cluster, ctx):
    cluster.add_crd("widgets.example.io", "example.io", "widgets", "Widget")
    cluster.add(WIDGETS, "w1", "team-a")
    cluster.add(WIDGETS, "w2", "team-b")

    found = asyncio.run(crd_instances(ctx, "widgets.example.io"))

    assert _names(found) == [("widgets", "team-a", "w1"), ("widgets", "team-b", "w2")]
    assert {r.display_kind for r in found} == {"Widget"}


def test_missing_crd_yields_no_instances(cluster, ctx):
    assert asyncio.run(crd_instances(ctx, "gone.example.io")) == []


def test_generic_by_label_keeps_every_labelled_item(cluster, ctx):
    cluster.add(CONFIGMAPS, "settings", "default", labels={"app": "bpfman"})
    cluster.add(DEPLOYMENTS, "agent", "bpfman", labels={"app.kubernetes.io/name": "bpfman"})
    cluster.add(CONFIGMAPS, "unrelated", "default", labels={"app": "nginx"})

    found = asyncio.run(resources_by_label(ctx))

    assert _names(found) == [("configmaps", "default", "settings"), ("deployments", "bpfman", "agent")]


def test_generic_by_name_uses_heuristic(cluster, ctx):
    cluster.add(NAMESPACES, "bpfman")
    cluster.add(CLUSTERROLES, "bpfman-agent-role")
    cluster.add(CONFIGMAPS, "tcprogram-cache", "kube-system")
    cluster.add(CONFIGMAPS, "coredns", "kube-system")

    found = asyncio.run(resources_by_name(ctx))

    assert _names(found) == [
        ("clusterroles", "", "bpfman-agent-role"),
        ("configmaps", "kube-system", "tcprogram-cache"),
        ("namespaces", "", "bpfman"),
    ]


def test_generic_fan_out_respects_concurrency_cap(cluster, ctx):
    ctx.profile.max_concurrency = 2
    cluster.list_delay = 0.02

    asyncio.run(resources_by_name(ctx))

    assert 1 <= cluster.peak_in_flight <= 2


def test_label_and_name_fan_outs_share_one_cap(cluster, ctx, monkeypatch):
    async def no_crds(_ctx):
        return []

    monkeypatch.setattr(discovery, "discover_crds", no_crds)
    ctx.profile.max_concurrency = 2
    cluster.list_delay = 0.02

    asyncio.run(discover_all(ctx))

    assert 1 <= cluster.peak_in_flight <= 2


def test_failed_resource_types_are_skipped(cluster, ctx):
    cluster.unserved_plurals.add(SUBSCRIPTIONS.plural)
    cluster.list_failures.add(("configmaps", "app=bpfman"))
    cluster.add(CONFIGMAPS, "labelled", "default", labels={"app": "bpfman"})
    cluster.add(DEPLOYMENTS, "bpfman-operator", "bpfman")

    found = asyncio.run(discover_all(ctx))

    assert _names(found) == [("deployments", "bpfman", "bpfman-operator")]


def test_crd_list_failure_is_not_fatal(cluster, ctx):
    cluster.list_failures.add(("customresourcedefinitions", None))
    cluster.add_crd("widgets.example.io", "example.io", "widgets", "Widget", labels={"app": "bpfman"})
    cluster.add(WIDGETS, "w1", "default")

    found = asyncio.run(discover_all(ctx))

    assert _names(found) == [("customresourcedefinitions", "", "widgets.example.io"), ("widgets", "default", "w1")]


def test_results_from_all_strategies_are_deduplicated(cluster, ctx):
    # found by label, by two selectors, by name and by CRD allow-list at once
    cluster.add_crd(
        "bpfapplications.bpfman.io",
        "bpfman.io",
        "bpfapplications",
        "BpfApplication",
        labels={"app": "bpfman", "app.kubernetes.io/name": "bpfman"},
    )
    cluster.add(CONFIGMAPS, "bpfman-config", "bpfman", labels={"app": "bpfman", "app.kubernetes.io/part-of": "bpfman"})

    found = asyncio.run(discover_all(ctx))

    assert _names(found) == [
        ("configmaps", "bpfman", "bpfman-config"),
        ("customresourcedefinitions", "", "bpfapplications.bpfman.io"),
    ]
    assert sum(1 for r in found if r.resource_kind == CRD_KIND) == 1
