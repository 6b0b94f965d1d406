import asyncio
import logging
import signal
from typing import Callable

from bpfpurge.config import PurgeProfile
from bpfpurge.engine import PurgeContext, PurgeEngine
from bpfpurge.errors import ClientInitError, PurgeTimeout
from bpfpurge.kube import ClusterClient, RateController, get_cluster_client

logger = logging.getLogger("bpfpurge.cli")

EXIT_OK = 0
EXIT_FAILURE = 1


def build_context(profile: PurgeProfile, client: ClusterClient) -> PurgeContext:
    rate = RateController(
        initial_delay=profile.rate.initial_delay,
        min_delay=profile.rate.min_delay,
        max_delay=profile.rate.max_delay,
        max_attempts=profile.rate.max_attempts,
    )
    return PurgeContext(client=client, rate=rate, profile=profile)


async def _run(engine: PurgeEngine) -> int:
    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(engine.run_with_deadline())

    def _on_signal(signame: str) -> None:
        logger.warning("Received %s, cancelling operations...", signame)
        task.cancel()

    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _on_signal, sig.name)
            installed.append(sig)
        except (NotImplementedError, RuntimeError) as e:
            logger.debug("Signal handler for %s unavailable: %s", sig.name, e)

    try:
        result = await task
    except asyncio.CancelledError:
        logger.warning("Purge interrupted before completion")
        result = engine.result
        result.interrupted = True
    except PurgeTimeout as e:
        logger.warning("%s", e)
        result = e.result or engine.result
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)

    app = engine.ctx.profile.app
    if result.interrupted:
        logger.warning("%s purge stopped before verification. %s", app, result.summary)
    elif result.clean:
        logger.info("%s purge completed successfully! %s", app, result.summary)
    else:
        logger.warning("%s purge completed with %d resources remaining. %s", app, len(result.remaining), result.summary)
    return EXIT_OK


def run_purge(
    profile: PurgeProfile,
    client_factory: Callable[..., ClusterClient] = get_cluster_client,
) -> int:
    logger.info("Starting %s purge from cluster...", profile.app)
    try:
        client = client_factory(request_timeout=profile.request_timeout)
    except ClientInitError as e:
        logger.error("Failed to initialize Kubernetes client: %s", e)
        return EXIT_FAILURE

    engine = PurgeEngine(build_context(profile, client))
    return asyncio.run(_run(engine))
