"""Parsing of inline slot annotations such as ``[a latte](drink_type)``"""

import re
from typing import List, Sequence

from .errors import InvalidInputError
from .models import SlotDefinition, UtteranceChunk

SLOT_PATTERN = re.compile(r"\[(.+?)\]\(([\w.-]+)\)")


def chunk_slots_in_utterance(
    utterance: str,
    slot_definitions: Sequence[SlotDefinition]
) -> List[UtteranceChunk]:
    """Split annotated text into literal and slot chunks.

    Annotations naming an unknown slot are kept verbatim inside the
    surrounding literal chunk. A known slot with a blank value raises
    ``InvalidInputError``.
    """
    definitions = {sd.name: sd for sd in slot_definitions}
    chunks: List[UtteranceChunk] = []

    cursor = 0
    search_from = 0
    slot_idx = 0

    while True:
        match = SLOT_PATTERN.search(utterance, search_from)
        if match is None:
            break
        search_from = match.end()

        slot_value, slot_name = match.group(1), match.group(2)
        definition = definitions.get(slot_name)
        if definition is None:
            continue
        if not slot_value.strip():
            raise InvalidInputError(f"Slot '{slot_name}' has a blank value in utterance '{utterance}'")

        if cursor < match.start():
            chunks.append(UtteranceChunk(value=utterance[cursor:match.start()]))

        chunks.append(UtteranceChunk(
            value=slot_value,
            slot_idx=slot_idx,
            slot_name=slot_name,
            entities=list(definition.entities),
        ))
        slot_idx += 1
        cursor = match.end()

    if cursor < len(utterance):
        chunks.append(UtteranceChunk(value=utterance[cursor:]))

    return chunks


def plain_text(chunks: Sequence[UtteranceChunk]) -> str:
    """Text of an utterance with the annotation syntax of recognized slots stripped"""
    return "".join(chunk.value for chunk in chunks)
