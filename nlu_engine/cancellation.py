"""Cooperative cancellation for training runs"""

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

import structlog

logger = structlog.get_logger(__name__)


class CancellationToken:
    """Cancellation signal shared by every stage of a training run"""

    def __init__(self, uid: Optional[str] = None):
        self.uid = uid or str(uuid.uuid4())
        self.cancelled_at: Optional[datetime] = None
        self._event = asyncio.Event()
        self._callbacks: List[Callable[["CancellationToken"], None]] = []

    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None

    def cancel(self):
        """Request cancellation; only the first call has an effect"""
        if self.cancelled_at is not None:
            return

        self.cancelled_at = datetime.now(timezone.utc)
        self._event.set()
        logger.info("Cancellation requested", token=self.uid)

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(self)

    def on_cancel(self, callback: Callable[["CancellationToken"], None]):
        """Run ``callback`` once the token is cancelled (immediately if it already is)"""
        if self.is_cancelled():
            callback(self)
        else:
            self._callbacks.append(callback)

    async def wait(self) -> datetime:
        """Block until the token is cancelled"""
        await self._event.wait()
        return self.cancelled_at

    def __repr__(self) -> str:
        return f"CancellationToken(uid={self.uid!r}, cancelled_at={self.cancelled_at!r})"
