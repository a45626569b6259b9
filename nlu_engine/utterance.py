"""Tokenized utterance with character offsets and append-only entity/slot tags"""

import copy
import re
import unicodedata
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .errors import InvalidInputError, RangeResolutionError
from .models import (
    ExtractedEntity,
    ExtractedSlot,
    RenderOptions,
    SlotRenderMode,
    Token,
    UtteranceEntity,
    UtteranceSlot,
)

SPACE = "▁"

_SPACES = re.compile(f"{SPACE}+")
_NON_WORD_CATEGORIES = ("P", "S", "Z", "C")


def is_word(value: str) -> bool:
    """A token is a word when, space markers aside, it only holds letters, marks or digits"""
    stripped = value.replace(SPACE, "")
    if not stripped:
        return False
    return not any(unicodedata.category(c).startswith(_NON_WORD_CATEGORIES) for c in stripped)


def _leading_spaces(value: str) -> int:
    return len(value) - len(value.lstrip(SPACE))


class Utterance:
    """Ordered tokens of a training example plus the entities and slots tagged on them"""

    def __init__(self, tokens: Sequence[str], vectors: Sequence[Sequence[float]]):
        if len(tokens) != len(vectors):
            raise InvalidInputError(
                f"Expected one vector per token, got {len(vectors)} vectors for {len(tokens)} tokens"
            )

        built = []
        offset = 0
        for i, value in enumerate(tokens):
            vector = np.array(vectors[i], copy=True)
            vector.setflags(write=False)
            built.append(Token(
                index=i,
                value=value,
                offset=offset,
                is_word=is_word(value),
                is_bos=i == 0,
                is_eos=i == len(tokens) - 1,
                starts_with_space=value.startswith(SPACE),
                vector=vector,
            ))
            offset += len(value)

        self._tokens: Tuple[Token, ...] = tuple(built)
        self._length = offset
        self._entities: List[UtteranceEntity] = []
        self._slots: List[UtteranceSlot] = []

    @property
    def tokens(self) -> Tuple[Token, ...]:
        return self._tokens

    @property
    def entities(self) -> Tuple[UtteranceEntity, ...]:
        return tuple(self._entities)

    @property
    def slots(self) -> Tuple[UtteranceSlot, ...]:
        return tuple(self._slots)

    @property
    def text(self) -> str:
        """Original text, space markers rendered as spaces"""
        return "".join(t.value for t in self._tokens).replace(SPACE, " ")

    def token_entities(self, index: int) -> List[UtteranceEntity]:
        """Entities whose token range covers ``index``"""
        self._check_index(index)
        return [e for e in self._entities if e.covers(index)]

    def token_slots(self, index: int) -> List[UtteranceSlot]:
        """Slots whose token range covers ``index``"""
        self._check_index(index)
        return [s for s in self._slots if s.covers(index)]

    def tag_entity(self, entity: ExtractedEntity, start: int, end: int) -> UtteranceEntity:
        start_idx, end_idx = self._resolve_range(start, end)
        tagged = UtteranceEntity(
            **_extracted_fields(entity, ExtractedEntity),
            start_pos=start,
            end_pos=end,
            start_token_idx=start_idx,
            end_token_idx=end_idx,
        )
        self._entities.append(tagged)
        return tagged

    def tag_slot(self, slot: ExtractedSlot, start: int, end: int) -> UtteranceSlot:
        start_idx, end_idx = self._resolve_range(start, end)
        tagged = UtteranceSlot(
            **_extracted_fields(slot, ExtractedSlot),
            start_pos=start,
            end_pos=end,
            start_token_idx=start_idx,
            end_token_idx=end_idx,
        )
        self._slots.append(tagged)
        return tagged

    def clone(self, copy_entities: bool, copy_slots: bool) -> "Utterance":
        """Independent copy; tags are replayed from their character bounds"""
        utterance = Utterance(
            [t.value for t in self._tokens],
            [t.vector.copy() for t in self._tokens],
        )

        if copy_entities:
            for entity in self._entities:
                utterance.tag_entity(entity, entity.start_pos, entity.end_pos)

        if copy_slots:
            for slot in self._slots:
                utterance.tag_slot(slot, slot.start_pos, slot.end_pos)

        return utterance

    def render(self, options: Optional[RenderOptions] = None) -> str:
        opts = options or RenderOptions()

        tokens = list(self._tokens)
        if opts.only_words:
            tokens = [t for t in tokens if t.is_word or self.token_slots(t.index)]

        parts = []
        rendered_slot = None
        for token in tokens:
            slots = self.token_slots(token.index)
            if slots and opts.slot_render_mode == SlotRenderMode.KEEP_SLOT_NAME:
                slot = slots[0]
                if slot is rendered_slot:
                    continue
                rendered_slot = slot
                parts.append(token.value[:_leading_spaces(token.value)] + slot.name)
            else:
                rendered_slot = None
                parts.append(token.value)

        final = "".join(parts)
        if opts.lower_case:
            final = final.lower()

        return _SPACES.sub(" ", final)

    def _check_index(self, index: int):
        if not 0 <= index < len(self._tokens):
            raise IndexError(f"Token index {index} out of range")

    def _resolve_range(self, start: int, end: int) -> Tuple[int, int]:
        if start < 0 or end > self._length or start >= end:
            raise RangeResolutionError(
                f"Invalid range [{start}, {end}) for an utterance of length {self._length}"
            )

        first = next((t for t in self._tokens if t.offset == start), None)
        if first is None:
            # the range may skip the space markers a token starts with
            first = next(
                (t for t in self._tokens if t.offset < start <= t.offset + _leading_spaces(t.value)),
                None,
            )
        last = next((t for t in reversed(self._tokens) if t.end == end), None)

        if first is None or last is None or first.index > last.index:
            raise RangeResolutionError(
                f"Range [{start}, {end}) does not align to token boundaries"
            )

        return first.index, last.index

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Utterance):
            return NotImplemented
        return (
            self._tokens == other._tokens
            and self._entities == other._entities
            and self._slots == other._slots
        )

    def __len__(self) -> int:
        return len(self._tokens)

    def __str__(self) -> str:
        return self.render()

    def __repr__(self) -> str:
        return f"Utterance({self.text!r}, entities={len(self._entities)}, slots={len(self._slots)})"


def _extracted_fields(tag, model) -> dict:
    return copy.deepcopy(tag.model_dump(include=set(model.model_fields)))
