import asyncio
import logging
from collections import Counter
from typing import List, Optional

from bpfpurge.kube.objects import CustomResourceDefinition, ResourceIdentity, ResourceKind

from .context import PurgeContext
from .identity import deduplicate

logger = logging.getLogger("bpfpurge.discovery")


async def crds_by_label(ctx: PurgeContext) -> List[CustomResourceDefinition]:
    found: List[CustomResourceDefinition] = []
    for selector in ctx.profile.label_selectors:
        try:
            crds = await ctx.call(ctx.client.list_crds, label_selector=selector)
        except Exception as e:
            logger.warning("Failed to list CRDs with selector %s: %s", selector, e)
            continue
        for crd in crds:
            logger.info("Found %s CRD: %s (group: %s) - by label selector: %s", ctx.profile.app, crd.name, crd.group, selector)
            found.append(crd)
    return found


async def crds_by_name(ctx: PurgeContext) -> List[CustomResourceDefinition]:
    try:
        crds = await ctx.call(ctx.client.list_crds)
    except Exception as e:
        logger.warning("Failed to list CRDs for name matching: %s", e)
        return []

    found: List[CustomResourceDefinition] = []
    allowed = set(ctx.profile.crd_names)
    for crd in crds:
        if crd.name.lower() in allowed or ctx.profile.matches_name(crd.name, crd.group):
            logger.info("Found %s CRD: %s (group: %s) - by name pattern", ctx.profile.app, crd.name, crd.group)
            found.append(crd)
    return found


async def crd_instances(ctx: PurgeContext, crd_name: str) -> List[ResourceIdentity]:
    try:
        crd = await ctx.call(ctx.client.get_crd, crd_name)
        kind = crd.served_kind()
        items = await ctx.call(ctx.client.list_resources, kind)
    except Exception as e:
        logger.warning("Failed to get instances of %s: %s", crd_name, e)
        return []
    logger.info("Found %d instances of %s", len(items), crd_name)
    return [item.identity(crd.kind) for item in items]


async def discover_crds(ctx: PurgeContext) -> List[ResourceIdentity]:
    """CRDs by label and by name, then every instance of each one found."""
    by_label, by_name = await asyncio.gather(crds_by_label(ctx), crds_by_name(ctx))
    crds = deduplicate(crd.identity() for crd in by_label + by_name)
    logger.info("Found %d %s CRDs", len(crds), ctx.profile.app)

    instance_lists = await asyncio.gather(*(crd_instances(ctx, crd.name) for crd in crds))
    result = list(crds)
    for instances in instance_lists:
        result.extend(instances)
    return result


async def _list_limited(
    ctx: PurgeContext, sem: asyncio.Semaphore, kind: ResourceKind, selector=None
) -> List[ResourceIdentity]:
    async with sem:
        try:
            items = await ctx.call(ctx.client.list_resources, kind, label_selector=selector)
        except Exception as e:
            # missing API groups (e.g. no OLM) land here
            logger.warning("Skipping %s (selector=%s): %s", kind.plural, selector, e)
            return []
    if selector:
        return [item.identity() for item in items]
    return [item.identity() for item in items if ctx.profile.matches_name(item.name)]


async def _fan_out(ctx: PurgeContext, queries, sem: Optional[asyncio.Semaphore] = None) -> List[ResourceIdentity]:
    if sem is None:
        sem = asyncio.Semaphore(ctx.profile.max_concurrency)
    results = await asyncio.gather(*(_list_limited(ctx, sem, kind, selector) for kind, selector in queries))
    return [r for batch in results for r in batch]


async def resources_by_label(ctx: PurgeContext, sem: Optional[asyncio.Semaphore] = None) -> List[ResourceIdentity]:
    queries = [(kind, sel) for kind in ctx.profile.resource_types for sel in ctx.profile.label_selectors]
    found = await _fan_out(ctx, queries, sem)
    logger.info("Found %d resources by labels", len(found))
    return found


async def resources_by_name(ctx: PurgeContext, sem: Optional[asyncio.Semaphore] = None) -> List[ResourceIdentity]:
    found = await _fan_out(ctx, [(kind, None) for kind in ctx.profile.resource_types], sem)
    logger.info("Found %d resources by names", len(found))
    return found


async def _guarded(name: str, coro) -> List[ResourceIdentity]:
    try:
        return await coro
    except Exception as e:
        logger.warning("Discovery strategy %s failed: %s", name, e)
        return []


async def discover_all(ctx: PurgeContext) -> List[ResourceIdentity]:
    logger.info("Discovering %s resources...", ctx.profile.app)
    # one cap across both generic fan-outs
    sem = asyncio.Semaphore(ctx.profile.max_concurrency)
    batches = await asyncio.gather(
        _guarded("crds", discover_crds(ctx)),
        _guarded("labels", resources_by_label(ctx, sem)),
        _guarded("names", resources_by_name(ctx, sem)),
    )
    resources = deduplicate(r for batch in batches for r in batch)

    if resources:
        logger.info("Summary of discovered resources:")
        for plural, count in sorted(Counter(r.resource_kind.plural for r in resources).items()):
            logger.info("  %s: %d", plural, count)
    return resources
