import asyncio
import enum
import logging
from typing import List, Sequence

from bpfpurge.errors import DeletionError, FinalizerRemovalError
from bpfpurge.kube.objects import ResourceIdentity

from .context import PurgeContext

logger = logging.getLogger("bpfpurge.deletion")


class DeleteOutcome(enum.Enum):
    DELETED = "deleted"
    ALREADY_GONE = "already-gone"


async def _delete(ctx: PurgeContext, resource: ResourceIdentity) -> None:
    await ctx.call(
        ctx.client.delete_resource,
        resource.resource_kind,
        resource.name,
        resource.namespace,
        grace_period_seconds=0,
    )


async def delete_with_finalizers(ctx: PurgeContext, resource: ResourceIdentity) -> DeleteOutcome:
    """Delete one resource, stripping finalizers if the first attempt does not go through.

    At most two delete attempts and one finalizer update per resource.
    Raises FinalizerRemovalError or DeletionError when the resource cannot
    be removed.
    """
    location = resource.location
    logger.info("Deleting %s...", location)

    try:
        await _delete(ctx, resource)
        logger.info("Successfully deleted %s", location)
        return DeleteOutcome.DELETED
    except Exception as e:
        logger.debug("Initial delete of %s failed: %s", location, e)

    try:
        obj = await ctx.call(ctx.client.get_resource, resource.resource_kind, resource.name, resource.namespace)
    except Exception as e:
        logger.info("Could not get resource %s (may not exist): %s", location, e)
        return DeleteOutcome.ALREADY_GONE

    if obj.finalizers:
        logger.info("Found finalizers on %s: %s", location, obj.finalizers)
        try:
            await ctx.call(
                ctx.client.update_finalizers,
                resource.resource_kind,
                resource.name,
                resource.namespace,
                [],
            )
        except Exception as e:
            raise FinalizerRemovalError(resource, f"failed to remove finalizers from {location}: {e}") from e
        logger.info("Successfully removed finalizers from %s", location)

        try:
            await _delete(ctx, resource)
        except Exception as e:
            raise DeletionError(resource, f"failed to delete {location} after removing finalizers: {e}") from e
        logger.info("Successfully deleted %s after removing finalizers", location)
        return DeleteOutcome.DELETED

    try:
        await _delete(ctx, resource)
    except Exception as e:
        raise DeletionError(resource, f"failed to delete {location}: {e}") from e
    logger.info("Successfully deleted %s on retry", location)
    return DeleteOutcome.DELETED


async def delete_all(ctx: PurgeContext, resources: Sequence[ResourceIdentity]) -> List[Exception]:
    """Delete every resource concurrently; collect per-resource errors instead of failing fast."""
    results = await asyncio.gather(
        *(delete_with_finalizers(ctx, r) for r in resources),
        return_exceptions=True,
    )
    errors: List[Exception] = []
    for resource, result in zip(resources, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, Exception):
            logger.warning("Failed to delete %s: %s", resource.location, result)
            errors.append(result)
    return errors
