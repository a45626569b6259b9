"""Tokenizer/vectorizer adapters consumed by the training pipeline"""

from typing import Dict, List, Optional, Protocol, Sequence, Tuple

import httpx
import numpy as np
import structlog

from .config import settings
from .errors import ToolingError
from .metrics import record_tooling_call

logger = structlog.get_logger(__name__)


class TrainTools(Protocol):
    """Batch tokenizer and vectorizer"""

    async def tokenize_utterances(self, utterances: List[str], language_code: str) -> List[List[str]]:
        ...

    async def vectorize_tokens(self, tokens: List[str], language_code: str) -> List[np.ndarray]:
        ...


class LanguageServerTools:
    """Tooling adapter backed by a language server over HTTP"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = (base_url or settings.language_server_url).rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.language_server_timeout
        )

    async def close(self):
        """Close the HTTP client"""
        await self._client.aclose()

    async def __aenter__(self) -> "LanguageServerTools":
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def tokenize_utterances(self, utterances: List[str], language_code: str) -> List[List[str]]:
        """Tokenize a batch of utterances"""
        data = await self._post("/tokenize", {"utterances": utterances, "language": language_code})
        tokens = data.get("tokens")

        if not isinstance(tokens, list) or len(tokens) != len(utterances):
            raise ToolingError(
                f"Expected {len(utterances)} token lists from the language server"
            )
        return [list(t) for t in tokens]

    async def vectorize_tokens(self, tokens: List[str], language_code: str) -> List[np.ndarray]:
        """Embed a batch of tokens"""
        data = await self._post("/vectorize", {"tokens": tokens, "lang": language_code})
        vectors = data.get("vectors")

        if not isinstance(vectors, list) or len(vectors) != len(tokens):
            raise ToolingError(
                f"Expected {len(tokens)} vectors from the language server"
            )
        return [np.asarray(v, dtype=np.float32) for v in vectors]

    async def _post(self, endpoint: str, payload: dict) -> dict:
        record_tooling_call(endpoint.strip("/"))
        try:
            response = await self._client.post(endpoint, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            logger.error("Language server call failed",
                        endpoint=endpoint,
                        error=str(e))
            raise ToolingError(f"Language server call to {endpoint} failed: {e}") from e
        except ValueError as e:
            raise ToolingError(f"Malformed response from {endpoint}") from e


class VectorCache:
    """Token vectors memoized per bot and language.

    Partitions are unbounded and only shrink through ``clear``.
    """

    def __init__(self):
        self._partitions: Dict[Tuple[str, str], Dict[str, np.ndarray]] = {}

    def partition(self, bot_id: str, language_code: str) -> Dict[str, np.ndarray]:
        return self._partitions.setdefault((bot_id, language_code), {})

    def clear(self, bot_id: Optional[str] = None):
        """Drop every partition, or only those of ``bot_id``"""
        if bot_id is None:
            self._partitions.clear()
            return
        for key in [k for k in self._partitions if k[0] == bot_id]:
            del self._partitions[key]

    def tools_for(self, bot_id: str, tools: TrainTools) -> "CachedTrainTools":
        return CachedTrainTools(tools, self, bot_id)


class CachedTrainTools:
    """Tooling adapter that only vectorizes tokens missing from the bot's cache"""

    def __init__(self, tools: TrainTools, cache: VectorCache, bot_id: str):
        self.tools = tools
        self.cache = cache
        self.bot_id = bot_id

    async def tokenize_utterances(self, utterances: List[str], language_code: str) -> List[List[str]]:
        return await self.tools.tokenize_utterances(utterances, language_code)

    async def vectorize_tokens(self, tokens: Sequence[str], language_code: str) -> List[np.ndarray]:
        known = self.cache.partition(self.bot_id, language_code)
        missing = list(dict.fromkeys(t for t in tokens if t not in known))

        if missing:
            vectors = await self.tools.vectorize_tokens(missing, language_code)
            if len(vectors) != len(missing):
                raise ToolingError(f"Expected {len(missing)} vectors, got {len(vectors)}")
            known.update(zip(missing, vectors))
            logger.debug("Vector cache updated",
                        bot_id=self.bot_id,
                        language=language_code,
                        added=len(missing),
                        size=len(known))

        return [known[t] for t in tokens]
