"""
NLU training engine.

Turns structured training requests into tagged, vectorized utterances:
- Slot annotation parsing
- Batched tokenization and vectorization
- Utterance modeling with entity/slot tags
- Cancellable staged training
"""

from .cancellation import CancellationToken
from .chunker import chunk_slots_in_utterance
from .engine import Engine
from .errors import (
    InvalidInputError,
    NLUEngineError,
    NotFoundError,
    RangeResolutionError,
    StageError,
    ToolingError,
)
from .intent_service import IntentService
from .models import (
    ExtractedEntity,
    ExtractedSlot,
    Intent,
    ListEntity,
    PatternEntity,
    RenderOptions,
    SlotDefinition,
    SlotRenderMode,
    StructuredTrainInput,
    TrainSet,
    UtteranceChunk,
)
from .pipeline import StructuredTrainOutput, Trainer, TrainResult, TrainStatus
from .storage import FileSystemDocumentStore
from .tools import LanguageServerTools, TrainTools, VectorCache
from .utterance import SPACE, Utterance

__all__ = [
    # Models
    "ExtractedEntity",
    "ExtractedSlot",
    "Intent",
    "ListEntity",
    "PatternEntity",
    "RenderOptions",
    "SlotDefinition",
    "SlotRenderMode",
    "StructuredTrainInput",
    "StructuredTrainOutput",
    "TrainSet",
    "UtteranceChunk",
    "Utterance",
    "SPACE",
    # Training
    "CancellationToken",
    "Engine",
    "Trainer",
    "TrainResult",
    "TrainStatus",
    "chunk_slots_in_utterance",
    # Tooling
    "LanguageServerTools",
    "TrainTools",
    "VectorCache",
    # Storage
    "FileSystemDocumentStore",
    "IntentService",
    # Errors
    "NLUEngineError",
    "InvalidInputError",
    "NotFoundError",
    "RangeResolutionError",
    "StageError",
    "ToolingError",
]
