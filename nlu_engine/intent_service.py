"""Intent definitions: reading, validation and derivation from flows"""

import json
import re
from typing import Any, Dict, List, Optional, Sequence

import structlog

from .config import settings
from .errors import InvalidInputError, NotFoundError
from .models import (
    EntityDefinition,
    Intent,
    IntentDefinition,
    ListEntity,
    PatternEntity,
    SlotDefinition,
    StructuredTrainInput,
)
from .storage import BotDocumentStore, FileSystemDocumentStore

logger = structlog.get_logger(__name__)

INTENTS_DIR = "intents"
ENTITIES_DIR = "entities"
FLOWS_DIR = "flows"
FLOW_SUFFIX = ".flow.json"
INTENT_CONDITION = "user_intent_is"


def sanitize_file_name(name: str) -> str:
    name = re.sub(r"\.json$", "", name.strip(), flags=re.IGNORECASE).lower()
    return re.sub(r"\s+", "-", name)


def _validated_name(name: str, kind: str = "intent") -> str:
    sanitized = sanitize_file_name(name or "")
    if len(sanitized) < 1:
        raise InvalidInputError(f"Invalid {kind} name, expected at least one character")
    if sanitized.startswith("/") or ".." in sanitized.split("/"):
        raise InvalidInputError(f"Invalid {kind} name '{name}'")
    return sanitized


class IntentService:
    """Reads and writes the intents of bots stored in a document store"""

    def __init__(self, store: FileSystemDocumentStore):
        self.store = store

    def _bot(self, bot_id: str) -> BotDocumentStore:
        return self.store.for_bot(bot_id)

    async def _read_json(self, bot_id: str, folder: str, name: str) -> Optional[dict]:
        content = await self._bot(bot_id).read(folder, name)
        if content is None:
            return None
        try:
            return json.loads(content)
        except ValueError as e:
            raise InvalidInputError(f"Document {folder}/{name} is not valid JSON: {e}") from e

    async def intent_exists(self, bot_id: str, intent_name: str) -> bool:
        return await self._bot(bot_id).exists(INTENTS_DIR, f"{intent_name}.json")

    async def get_intent(self, bot_id: str, intent_name: str) -> IntentDefinition:
        """Read a stored intent"""
        intent_name = _validated_name(intent_name)

        data = await self._read_json(bot_id, INTENTS_DIR, f"{intent_name}.json")
        if data is None:
            raise NotFoundError(f"Intent '{intent_name}' does not exist")
        return IntentDefinition.model_validate(data)

    async def get_intents(self, bot_id: str) -> List[IntentDefinition]:
        """Stored intents followed by the intents derived from flows"""
        intent_names = await self._bot(bot_id).list(INTENTS_DIR, ".json")
        intents = [await self.get_intent(bot_id, name) for name in intent_names]
        return intents + await self.get_intents_from_flows(bot_id)

    async def get_intents_from_flows(self, bot_id: str) -> List[IntentDefinition]:
        """Derive one intent per intent condition of every trigger node"""
        flow_paths = await self._bot(bot_id).list(FLOWS_DIR, FLOW_SUFFIX)
        intents_by_name: Dict[str, IntentDefinition] = {}

        def add(intent: IntentDefinition):
            if intent.name in intents_by_name:
                raise InvalidInputError(f'Duplicated intent with name "{intent.name}"')
            intents_by_name[intent.name] = intent

        for flow_path in flow_paths:
            flow = await self._read_json(bot_id, FLOWS_DIR, flow_path) or {}
            flow_name = flow_path[:-len(FLOW_SUFFIX)]
            topic_name = flow_name.split("/")[0]
            slots = _flow_slots(flow)

            for node in flow.get("nodes") or []:
                if node.get("type") != "trigger" and not node.get("triggers"):
                    continue

                node_name = node.get("name")
                conditions = _intent_conditions(node.get("conditions"))
                explicit = [
                    condition
                    for trigger in node.get("triggers") or []
                    for condition in _intent_conditions(trigger.get("conditions"))
                ]

                for i, condition in enumerate(conditions):
                    add(IntentDefinition(
                        name=sanitize_file_name(f"{flow_name}/{node_name}/{i}"),
                        contexts=[topic_name],
                        filename=flow_name,
                        slots=slots,
                        utterances=_condition_utterances(condition),
                    ))

                for i, condition in enumerate(explicit):
                    add(IntentDefinition(
                        name=sanitize_file_name(f"{flow_name}/{node_name}/{len(conditions) + i}"),
                        contexts=[sanitize_file_name(f"explicit:{flow_name}/{node_name}")],
                        filename=flow_name,
                        slots=slots,
                        utterances=_condition_utterances(condition),
                    ))

        return list(intents_by_name.values())

    async def get_entities(self, bot_id: str) -> List[EntityDefinition]:
        """Custom entities of a bot"""
        names = await self._bot(bot_id).list(ENTITIES_DIR, ".json")
        entities = []
        for name in names:
            data = await self._read_json(bot_id, ENTITIES_DIR, name)
            if data is not None:
                entities.append(EntityDefinition.model_validate(data))
        return entities

    async def save_intent(self, bot_id: str, intent: IntentDefinition) -> IntentDefinition:
        """Validate and store an intent"""
        name = await self._checked_intent_name(bot_id, intent)

        content = json.dumps(intent.model_dump(exclude_none=True), indent=2)
        await self._bot(bot_id).write(INTENTS_DIR, f"{name}.json", content)
        logger.info("Intent saved", bot_id=bot_id, intent=name)
        return intent

    async def _checked_intent_name(self, bot_id: str, intent: IntentDefinition) -> str:
        name = _validated_name(intent.name)

        slot_names = [slot.name for slot in intent.slots]
        duplicates = sorted({n for n in slot_names if slot_names.count(n) > 1})
        if duplicates:
            raise InvalidInputError(f"Duplicated slot names: {', '.join(duplicates)}")

        available = set(settings.system_entities)
        available.update(e.name for e in await self.get_entities(bot_id))

        for entity in dict.fromkeys(e for slot in intent.slots for e in slot.entities):
            if entity not in available:
                raise InvalidInputError(f'"{entity}" is neither a system entity nor a custom entity')

        return name

    async def update_intent(self, bot_id: str, intent_name: str, content: Dict[str, Any]) -> IntentDefinition:
        """Merge ``content`` into a stored intent, renaming its file when the name changes.

        Top-level fields are replaced, except ``utterances`` which is merged
        per language.
        """
        current = await self.get_intent(bot_id, intent_name)

        data = current.model_dump()
        for key, value in content.items():
            if key == "utterances" and isinstance(value, dict):
                data["utterances"] = {**data["utterances"], **value}
            else:
                data[key] = value
        merged = IntentDefinition.model_validate(data)

        new_name = await self._checked_intent_name(bot_id, merged)
        if new_name != _validated_name(intent_name):
            await self.delete_intent(bot_id, intent_name)
            logger.info("Intent renamed", bot_id=bot_id, intent=intent_name, new_name=new_name)

        return await self.save_intent(bot_id, merged)

    async def update_slot_entities(self, bot_id: str, previous_entity: str, new_entity: str) -> List[str]:
        """Rename an entity in the slots of every stored intent; returns the updated intents"""
        updated = []
        for file_name in await self._bot(bot_id).list(INTENTS_DIR, ".json"):
            intent = await self.get_intent(bot_id, file_name)
            if not any(previous_entity in slot.entities for slot in intent.slots):
                continue

            slots = [
                {"name": slot.name, "entities": [new_entity if e == previous_entity else e for e in slot.entities]}
                for slot in intent.slots
            ]
            await self.update_intent(bot_id, intent.name, {"slots": slots})
            updated.append(intent.name)

        logger.info("Slot entities renamed",
                    bot_id=bot_id,
                    previous=previous_entity,
                    new=new_entity,
                    intents=len(updated))
        return updated

    async def delete_intent(self, bot_id: str, intent_name: str):
        """Delete a stored intent"""
        intent_name = _validated_name(intent_name)

        if not await self.intent_exists(bot_id, intent_name):
            raise NotFoundError(f"Intent '{intent_name}' does not exist")

        await self._bot(bot_id).delete(INTENTS_DIR, f"{intent_name}.json")
        logger.info("Intent deleted", bot_id=bot_id, intent=intent_name)

    async def update_contexts_from_topics(self, bot_id: str, intent_names: Optional[Sequence[str]] = None):
        """Sync the contexts of stored intents with the topics of the flows using them.

        The list of intent names is optional; it only limits which intents are
        looked at.
        """
        flow_paths = await self._bot(bot_id).list(FLOWS_DIR, FLOW_SUFFIX)
        topics_by_intent: Dict[str, List[str]] = {}

        for flow_path in flow_paths:
            flow = await self._read_json(bot_id, FLOWS_DIR, flow_path) or {}
            topic_name = flow_path.split("/")[0]

            for node in flow.get("nodes") or []:
                if node.get("type") != "trigger":
                    continue

                match = next(iter(_intent_conditions(node.get("conditions"))), None)
                name = ((match or {}).get("params") or {}).get("intentName")

                if name and name != "none" and (intent_names is None or name in intent_names):
                    topics = topics_by_intent.setdefault(name, [])
                    if topic_name not in topics:
                        topics.append(topic_name)

        for intent_name, topics in topics_by_intent.items():
            intent = await self.get_intent(bot_id, intent_name)
            if sorted(intent.contexts) != sorted(topics):
                intent.contexts = topics
                await self.save_intent(bot_id, intent)

    async def build_train_input(self, bot_id: str, language_code: str) -> StructuredTrainInput:
        """Training request for a bot, with the utterances of one language"""
        intents = [i for i in await self.get_intents(bot_id) if i.utterances.get(language_code)]
        entities = await self.get_entities(bot_id)

        pattern_entities = []
        list_entities = []
        for entity in entities:
            if entity.type == "pattern":
                if not entity.pattern:
                    raise InvalidInputError(f"Pattern entity '{entity.name}' has no pattern")
                pattern_entities.append(PatternEntity(
                    name=entity.name,
                    pattern=entity.pattern,
                    examples=entity.examples,
                    ignore_case=not entity.match_case,
                    sensitive=entity.sensitive,
                ))
            elif entity.type == "list":
                list_entities.append(ListEntity(
                    name=entity.name,
                    synonyms={o.name: o.synonyms for o in entity.occurrences},
                    fuzzy_matching=entity.fuzzy > 0,
                    sensitive=entity.sensitive,
                ))

        return StructuredTrainInput(
            bot_id=bot_id,
            language_code=language_code,
            pattern_entities=pattern_entities,
            list_entities=list_entities,
            contexts=sorted({c for i in intents for c in i.contexts}),
            intents=[
                Intent[str](
                    name=i.name,
                    contexts=i.contexts,
                    slot_definitions=i.slots,
                    utterances=i.utterances[language_code],
                )
                for i in intents
            ],
        )


def _intent_conditions(conditions) -> List[dict]:
    return [c for c in conditions or [] if c and c.get("id") == INTENT_CONDITION]


def _condition_utterances(condition: dict) -> Dict[str, List[str]]:
    return (condition.get("params") or {}).get("utterances") or {}


def _flow_slots(flow: dict) -> List[SlotDefinition]:
    slots = []
    for variable in flow.get("variables") or []:
        params = variable.get("params") or {}
        if not params.get("name"):
            continue
        entity = params.get("subType") or variable.get("type")
        slots.append(SlotDefinition(name=params["name"], entities=[entity] if entity else []))
    return slots
