from dataclasses import dataclass

from bpfpurge.config import PurgeProfile
from bpfpurge.kube.client import ClusterClient
from bpfpurge.kube.ratelimit import RateController


@dataclass
class PurgeContext:
    client: ClusterClient
    rate: RateController
    profile: PurgeProfile

    async def call(self, op, *args, **kwargs):
        return await self.rate.execute_with_retry(op, *args, **kwargs)
