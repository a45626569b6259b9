"""Training pipeline: chunking, tokenization, utterance construction and extension stages"""

import asyncio
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

import structlog
from pydantic import BaseModel, ConfigDict

from .cancellation import CancellationToken
from .chunker import chunk_slots_in_utterance, plain_text
from .config import settings
from .errors import StageError, ToolingError
from .metrics import record_stage, record_train_run
from .models import (
    ExtractedSlot,
    Intent,
    StructuredTrainInput,
    TokenizedUtterance,
    TrainSet,
    UtteranceChunk,
)
from .tools import TrainTools
from .utterance import Utterance

logger = structlog.get_logger(__name__)

StructuredTrainOutput = TrainSet[Utterance]

Stage = Callable[[TrainSet, TrainTools], Awaitable[TrainSet]]


class TrainStatus(str, Enum):
    """Outcome of a training run"""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TrainedModel(BaseModel):
    """Output of a successful training run"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    bot_id: str
    language_code: str
    input_data: StructuredTrainInput
    output_data: StructuredTrainOutput
    started_at: datetime
    finished_at: datetime
    artefacts: Dict[str, Any] = {}


class TrainResult(BaseModel):
    """Training run outcome: succeeded, failed at a stage, or cancelled before one"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: TrainStatus
    bot_id: str
    language_code: str
    model: Optional[TrainedModel] = None
    error: Optional[StageError] = None
    failed_stage: Optional[str] = None
    cancelled_before: Optional[str] = None
    completed_stages: List[str] = []
    started_at: datetime
    finished_at: datetime


def _rebuild(train_set: TrainSet, intents: list, utterance_type: Any) -> TrainSet:
    return TrainSet[utterance_type](
        bot_id=train_set.bot_id,
        language_code=train_set.language_code,
        pattern_entities=train_set.pattern_entities,
        list_entities=train_set.list_entities,
        contexts=train_set.contexts,
        intents=intents,
    )


def _rebuild_intent(intent: Intent, utterances: list, utterance_type: Any) -> Intent:
    return Intent[utterance_type](
        name=intent.name,
        contexts=intent.contexts,
        slot_definitions=intent.slot_definitions,
        utterances=utterances,
    )


async def chunk_utterances(train_set: StructuredTrainInput, tools: TrainTools) -> TrainSet[List[UtteranceChunk]]:
    """Split every raw utterance into literal and slot chunks"""
    intents = [
        _rebuild_intent(
            intent,
            [chunk_slots_in_utterance(u, intent.slot_definitions) for u in intent.utterances],
            List[UtteranceChunk],
        )
        for intent in train_set.intents
    ]
    return _rebuild(train_set, intents, List[UtteranceChunk])


async def tokenize_utterances(
    train_set: TrainSet[List[UtteranceChunk]],
    tools: TrainTools
) -> TrainSet[TokenizedUtterance]:
    """Tokenize and vectorize all utterances with one call of each tool"""
    texts = [plain_text(chunks) for intent in train_set.intents for chunks in intent.utterances]

    tokens: List[List[str]] = []
    vector_map = {}
    if texts:
        tokens = await tools.tokenize_utterances(texts, train_set.language_code)
        if len(tokens) != len(texts):
            raise ToolingError(f"Expected {len(texts)} token lists, got {len(tokens)}")

        unique_tokens = list(dict.fromkeys(t for utterance_tokens in tokens for t in utterance_tokens))
        if unique_tokens:
            vectors = await tools.vectorize_tokens(unique_tokens, train_set.language_code)
            if len(vectors) != len(unique_tokens):
                raise ToolingError(f"Expected {len(unique_tokens)} vectors, got {len(vectors)}")
            vector_map = dict(zip(unique_tokens, vectors))

    logger.debug("Utterances tokenized",
                bot_id=train_set.bot_id,
                utterances=len(texts),
                unique_tokens=len(vector_map))

    remaining = iter(tokens)
    intents = []
    for intent in train_set.intents:
        tokenized = []
        for chunks in intent.utterances:
            utterance_tokens = next(remaining)
            tokenized.append(TokenizedUtterance(
                chunks=chunks,
                tokens=utterance_tokens,
                vectors=[vector_map[t] for t in utterance_tokens],
            ))
        intents.append(_rebuild_intent(intent, tokenized, TokenizedUtterance))

    return _rebuild(train_set, intents, TokenizedUtterance)


def build_utterance(tokenized: TokenizedUtterance) -> Utterance:
    """Construct an utterance and tag the slots found while chunking"""
    utterance = Utterance(tokenized.tokens, tokenized.vectors)

    cursor = 0
    for chunk in tokenized.chunks:
        start, end = cursor, cursor + len(chunk.value)
        cursor = end
        if not chunk.is_slot:
            continue

        # surrounding whitespace of a slot value belongs to the literal text
        start += len(chunk.value) - len(chunk.value.lstrip())
        end -= len(chunk.value) - len(chunk.value.rstrip())
        utterance.tag_slot(
            ExtractedSlot(confidence=1.0, name=chunk.slot_name, source=chunk.value),
            start,
            end,
        )

    return utterance


async def build_utterances(train_set: TrainSet[TokenizedUtterance], tools: TrainTools) -> StructuredTrainOutput:
    """Build utterance models with bounded fan-out"""
    semaphore = asyncio.Semaphore(settings.max_concurrent_builds)
    loop = asyncio.get_running_loop()

    async def build(tokenized: TokenizedUtterance) -> Utterance:
        async with semaphore:
            return await loop.run_in_executor(None, build_utterance, tokenized)

    intents = []
    for intent in train_set.intents:
        utterances = await asyncio.gather(*(build(u) for u in intent.utterances))
        intents.append(_rebuild_intent(intent, list(utterances), Utterance))

    return _rebuild(train_set, intents, Utterance)


async def append_none_intents(train_set: StructuredTrainOutput, tools: TrainTools) -> StructuredTrainOutput:
    """Extension point for none-intent augmentation"""
    return train_set


async def tfidf_tokens(train_set: StructuredTrainOutput, tools: TrainTools) -> StructuredTrainOutput:
    """Extension point for tf-idf token weighting"""
    return train_set


DEFAULT_STAGES: Tuple[Tuple[str, Stage], ...] = (
    ("chunk_utterances", chunk_utterances),
    ("tokenize_utterances", tokenize_utterances),
    ("build_utterances", build_utterances),
    ("append_none_intents", append_none_intents),
    ("tfidf_tokens", tfidf_tokens),
)


class Trainer:
    """Runs the training stages in sequence, checking for cancellation between them"""

    def __init__(self, tools: TrainTools, stages: Optional[Sequence[Tuple[str, Stage]]] = None):
        self.tools = tools
        self.stages = list(stages) if stages is not None else list(DEFAULT_STAGES)

    async def train(self, train_input: StructuredTrainInput, cancel_token: CancellationToken) -> TrainResult:
        started_at = datetime.now(timezone.utc)
        start_time = time.perf_counter()
        log = logger.bind(bot_id=train_input.bot_id,
                          language=train_input.language_code,
                          token=cancel_token.uid)

        def finish(status: TrainStatus, **kwargs) -> TrainResult:
            record_train_run(status.value, time.perf_counter() - start_time)
            return TrainResult(
                status=status,
                bot_id=train_input.bot_id,
                language_code=train_input.language_code,
                completed_stages=list(completed),
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
                **kwargs
            )

        log.info("Training started", intents=len(train_input.intents))
        state: TrainSet = train_input
        completed: List[str] = []

        for name, stage in self.stages:
            if cancel_token.is_cancelled():
                log.info("Training cancelled", before_stage=name)
                return finish(TrainStatus.CANCELLED, cancelled_before=name)

            stage_start = time.perf_counter()
            try:
                state = await stage(state, self.tools)
            except Exception as e:
                log.error("Training stage failed", stage=name, error=str(e))
                return finish(TrainStatus.FAILED, error=StageError(name, e), failed_stage=name)

            record_stage(name, time.perf_counter() - stage_start)
            completed.append(name)

        model = TrainedModel(
            bot_id=train_input.bot_id,
            language_code=train_input.language_code,
            input_data=train_input,
            output_data=state,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )
        log.info("Training completed",
                duration_ms=(time.perf_counter() - start_time) * 1000)
        return finish(TrainStatus.SUCCEEDED, model=model)
