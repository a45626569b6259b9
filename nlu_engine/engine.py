"""Training entry point: one cancellable run per bot and language"""

from typing import Dict, Optional, Tuple

import structlog

from .cancellation import CancellationToken
from .config import settings
from .models import StructuredTrainInput
from .pipeline import Trainer, TrainResult
from .tools import TrainTools, VectorCache

logger = structlog.get_logger(__name__)


class Engine:
    """Trains bots with the provided tooling adapter"""

    def __init__(self, tools: Optional[TrainTools] = None, vector_cache: Optional[VectorCache] = None):
        self.tools = tools
        if vector_cache is None and settings.enable_vector_cache:
            vector_cache = VectorCache()
        self.vector_cache = vector_cache
        self.active_trainings: Dict[Tuple[str, str], CancellationToken] = {}
        self.total_trainings = 0

    def provide_tools(self, tools: TrainTools):
        self.tools = tools

    async def train(
        self,
        train_input: StructuredTrainInput,
        cancel_token: Optional[CancellationToken] = None
    ) -> TrainResult:
        """Train a bot; a newer run for the same bot and language cancels this one"""
        if self.tools is None:
            raise RuntimeError("Tools not provided")

        key = (train_input.bot_id, train_input.language_code)
        previous = self.active_trainings.get(key)
        if previous is not None:
            logger.info("Cancelling previous training",
                       bot_id=key[0],
                       language=key[1],
                       token=previous.uid)
            previous.cancel()

        token = cancel_token or CancellationToken()
        self.active_trainings[key] = token

        tools = self.tools
        if self.vector_cache is not None:
            tools = self.vector_cache.tools_for(train_input.bot_id, self.tools)

        try:
            result = await Trainer(tools).train(train_input, token)
            self.total_trainings += 1
            return result
        finally:
            if self.active_trainings.get(key) is token:
                del self.active_trainings[key]

    def cancel_training(self, bot_id: str, language_code: str) -> bool:
        """Cancel the running training of a bot, if any"""
        token = self.active_trainings.get((bot_id, language_code))
        if token is None:
            return False
        token.cancel()
        return True

    def clear_vector_cache(self, bot_id: Optional[str] = None):
        """Drop cached vectors of a bot, or of every bot"""
        if self.vector_cache is None:
            return
        self.vector_cache.clear(bot_id)
        logger.info("Vector cache cleared", bot_id=bot_id)

    def is_training(self, bot_id: str, language_code: str) -> bool:
        return (bot_id, language_code) in self.active_trainings
