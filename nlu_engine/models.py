"""Data models for the NLU training engine"""

from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

UtteranceT = TypeVar("UtteranceT")


class SlotDefinition(BaseModel):
    """Slot declared on an intent, with the entities it accepts"""
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    entities: List[str] = []


class PatternEntity(BaseModel):
    """Regex-based custom entity"""
    model_config = ConfigDict(frozen=True)

    name: str
    pattern: str
    examples: List[str] = []
    ignore_case: bool = True
    sensitive: bool = False


class ListEntity(BaseModel):
    """Synonym-list custom entity"""
    model_config = ConfigDict(frozen=True)

    name: str
    synonyms: Dict[str, List[str]] = {}
    fuzzy_matching: bool = False
    sensitive: bool = False


class Intent(BaseModel, Generic[UtteranceT]):
    """Intent whose utterances are raw text, chunks or built utterances"""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    contexts: List[str] = []
    slot_definitions: List[SlotDefinition] = []
    utterances: List[UtteranceT] = []


class TrainSet(BaseModel, Generic[UtteranceT]):
    """Structured training request, at any stage of the pipeline"""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    bot_id: str
    language_code: str
    pattern_entities: List[PatternEntity] = []
    list_entities: List[ListEntity] = []
    contexts: List[str] = []
    intents: List[Intent[UtteranceT]] = []


StructuredTrainInput = TrainSet[str]


class UtteranceChunk(BaseModel):
    """Literal or slot slice of a raw annotated utterance"""
    model_config = ConfigDict(frozen=True)

    value: str
    slot_idx: Optional[int] = None
    slot_name: Optional[str] = None
    entities: Optional[List[str]] = None

    @property
    def is_slot(self) -> bool:
        return self.slot_name is not None


class TokenizedUtterance(BaseModel):
    """Chunks of an utterance with the tokens and vectors of its plain text"""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    chunks: List[UtteranceChunk]
    tokens: List[str]
    vectors: List[np.ndarray]


class ExtractedEntity(BaseModel):
    """Entity found in a span of text"""
    model_config = ConfigDict(frozen=True)

    confidence: float
    type: str
    metadata: Any = None


class ExtractedSlot(BaseModel):
    """Slot found in a span of text"""
    model_config = ConfigDict(frozen=True)

    confidence: float
    name: str
    source: Any = None


class UtteranceRange(BaseModel):
    """Character bounds of a tag and the token range they resolve to"""
    model_config = ConfigDict(frozen=True)

    start_pos: int
    end_pos: int
    start_token_idx: int
    end_token_idx: int

    def covers(self, token_idx: int) -> bool:
        """Whether the resolved token range includes ``token_idx``"""
        return self.start_token_idx <= token_idx <= self.end_token_idx


class UtteranceEntity(UtteranceRange, ExtractedEntity):
    """Entity tagged onto an utterance"""


class UtteranceSlot(UtteranceRange, ExtractedSlot):
    """Slot tagged onto an utterance"""


class Token(BaseModel):
    """Token of an utterance; everything but the tf-idf weight is fixed"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    index: int = Field(frozen=True)
    value: str = Field(frozen=True)
    offset: int = Field(frozen=True)
    is_word: bool = Field(frozen=True)
    is_bos: bool = Field(frozen=True)
    is_eos: bool = Field(frozen=True)
    starts_with_space: bool = Field(frozen=True)
    vector: np.ndarray = Field(frozen=True)
    tfidf: float = 0.0

    @property
    def end(self) -> int:
        return self.offset + len(self.value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Token):
            return NotImplemented
        return (
            self.index == other.index
            and self.value == other.value
            and self.offset == other.offset
            and self.tfidf == other.tfidf
            and np.array_equal(self.vector, other.vector)
        )

    def __str__(self) -> str:
        return self.value


class SlotRenderMode(str, Enum):
    """How slot-covered spans are rendered"""
    KEEP_VALUE = "keep-value"
    KEEP_SLOT_NAME = "keep-slot-name"


class RenderOptions(BaseModel):
    """Options for rendering an utterance back to text"""
    model_config = ConfigDict(frozen=True)

    lower_case: bool = False
    only_words: bool = False
    slot_render_mode: SlotRenderMode = SlotRenderMode.KEEP_VALUE


class EntityOccurrence(BaseModel):
    """Canonical value of a list entity and its synonyms"""
    name: str
    synonyms: List[str] = []


class EntityDefinition(BaseModel):
    """Entity definition as stored in the bot's entities folder"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    type: str = "list"
    occurrences: List[EntityOccurrence] = []
    fuzzy: float = 0.0
    pattern: Optional[str] = None
    examples: List[str] = []
    match_case: bool = Field(False, alias="matchCase")
    sensitive: bool = False


class IntentDefinition(BaseModel):
    """Intent definition as stored in the bot's intents folder"""
    model_config = ConfigDict(extra="ignore")

    name: str
    contexts: List[str] = []
    filename: Optional[str] = None
    slots: List[SlotDefinition] = []
    utterances: Dict[str, List[str]] = {}
