import asyncio
import signal

from loguru import logger

from ingestor.app.composition import create_worker_dependencies
from ingestor.app.config.settings import Settings
from ingestor.app.core import SERVICE_NAME


def _log(event: str, **kwargs) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


async def run_worker(settings: Settings | None = None) -> None:
    deps = create_worker_dependencies(settings)
    await deps.connect()

    stage = deps.stage
    stage_task = stage.start()
    consumer_task = asyncio.create_task(deps.consumer.run())

    shutdown = asyncio.Event()

    def request_shutdown() -> None:
        if not shutdown.is_set():
            _log("shutdown_signal")
            shutdown.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_shutdown)
        except NotImplementedError:
            pass

    _log("worker_started")
    shutdown_task = asyncio.create_task(shutdown.wait())
    await asyncio.wait(
        {shutdown_task, stage_task, consumer_task},
        return_when=asyncio.FIRST_COMPLETED,
    )
    shutdown_task.cancel()

    # Stopping the stage lets the consumer drain what was emitted and flush its last batch.
    await deps.close()
    try:
        await consumer_task
    finally:
        _log("worker_stopped")


def main() -> None:
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        _log("worker_interrupted")
    except Exception as e:
        logger.exception("worker failed: {}", e)
        raise


if __name__ == "__main__":
    main()
