import asyncio
import logging
import time
from typing import List, Optional

from bpfpurge.errors import PurgeTimeout
from bpfpurge.kube.objects import ResourceIdentity

from .context import PurgeContext
from .deletion import delete_all
from .discovery import discover_all
from .identity import categorize

logger = logging.getLogger("bpfpurge.engine")


class PurgeResult:
    def __init__(self):
        self.discovered = 0
        self.deleted = 0
        self.failed = 0
        self.remaining: List[ResourceIdentity] = []
        self.interrupted = False
        self.start = time.time()

    @property
    def clean(self) -> bool:
        return not self.interrupted and not self.remaining

    @property
    def summary(self) -> str:
        dur = time.time() - self.start
        text = (
            f"discovered={self.discovered} deleted={self.deleted} failed={self.failed} "
            f"remaining={len(self.remaining)} duration_sec={round(dur, 2)}"
        )
        if self.interrupted:
            text += " interrupted=true"
        return text


class PurgeEngine:
    def __init__(self, ctx: PurgeContext):
        self.ctx = ctx
        # progress of the current run, readable after a timeout or cancel
        self.result = PurgeResult()

    async def run_with_deadline(self, timeout: Optional[float] = None) -> PurgeResult:
        timeout = timeout if timeout is not None else self.ctx.profile.timeout_seconds
        try:
            return await asyncio.wait_for(self.run(), timeout=timeout)
        except asyncio.TimeoutError as e:
            self.result.interrupted = True
            raise PurgeTimeout(f"purge did not finish within {timeout}s", self.result) from e

    async def run(self) -> PurgeResult:
        result = self.result = PurgeResult()
        app = self.ctx.profile.app

        logger.info("Step 1: Discovering %s resources...", app)
        resources = await discover_all(self.ctx)
        result.discovered = len(resources)
        if not resources:
            logger.info("No %s resources found - cluster appears clean", app)
            return result
        logger.info("Found %d %s resources total", len(resources), app)

        crds, instances, others = categorize(resources, self.ctx.profile.instance_plurals)

        # instances before CRDs: removing a CRD first strands its objects
        phases = [
            ("Step 2", "custom resource instances", instances),
            ("Step 3", "other resources", others),
            ("Step 4", "CRDs", crds),
        ]
        for step, label, batch in phases:
            logger.info("%s: Deleting %s %s...", step, app, label)
            if not batch:
                continue
            logger.info("Found %d %s to delete", len(batch), label)
            errors = await delete_all(self.ctx, batch)
            if errors:
                logger.warning("Failed to delete %d of %d %s", len(errors), len(batch), label)
            result.failed += len(errors)
            result.deleted += len(batch) - len(errors)

        logger.info("Step 5: Final verification...")
        result.remaining = await self.verify()
        return result

    async def verify(self) -> List[ResourceIdentity]:
        remaining = await discover_all(self.ctx)
        app = self.ctx.profile.app
        if not remaining:
            logger.info("Cleanup verification: No %s resources remaining - SUCCESS", app)
            return []
        logger.warning("Cleanup verification: %d %s resources still remain:", len(remaining), app)
        for resource in remaining:
            logger.warning("  - %s", resource.location)
        return remaining
