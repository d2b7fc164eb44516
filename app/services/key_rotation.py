import asyncio
import logging
from contextlib import suppress

from app.services.key_service import SigningKeyStore
from app.utils.exceptions import KeyGenerationError

logger = logging.getLogger(__name__)


class KeyRotationScheduler:
    """
    Periodically rotates the active signing key.

    Owned by the application lifespan: `start()` on startup, `stop()` on
    shutdown. Rotation does not coordinate with in-flight requests; tokens
    signed just before a rotation stop verifying right after it.
    """

    def __init__(self, key_store: SigningKeyStore, interval_seconds: float):
        self._key_store = key_store
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None
        self._rotating = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self._task is not None:
            return
        logger.info(f"Scheduling key rotation every {self._interval} seconds")
        self._task = asyncio.create_task(self._rotation_loop(), name="keys.rotation")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Key rotation scheduler stopped")

    async def tick(self) -> bool:
        """
        Run one rotation. Returns False when skipped because the previous
        rotation is still generating; the tick is dropped, not queued.
        """
        if self._rotating:
            logger.warning("Previous key rotation still running; skipping this tick")
            return False
        self._rotating = True
        try:
            # RSA generation is CPU bound; keep it off the event loop
            await asyncio.to_thread(self._key_store.rotate)
        except KeyGenerationError:
            logger.error("Scheduled key rotation failed; keeping the current key until next tick")
        finally:
            self._rotating = False
        return True

    async def _rotation_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.tick()
            except Exception:
                logger.exception("Unexpected error during scheduled key rotation; retrying next interval")
