"""
Embedding providers and the ordered fallback chain.
External providers may fail or time out; the local TF-IDF generator never does.
"""

from abc import ABC, abstractmethod
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
import hashlib
import math
import threading
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ..core.exceptions import ProviderUnavailableError
from ..util.logging import logger
from .text import tokenize


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    name = "abstract"
    is_local = False

    @abstractmethod
    def embed_text(self, text: str) -> List[float]:
        """Generate embedding vector for given text."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass


class LocalTfidfEmbedding(IEmbeddingProvider):
    """Dependency-free TF-IDF embedding built from hash-seeded word vectors.

    Every token maps to a fixed pseudo-random unit vector seeded from the
    SHA-256 digest of the token, so the same token always produces the same
    vector in every process. A text embedding is the TF-IDF weighted sum of
    its token vectors, L2-normalised.

    IDF is ``log(N / df)`` over the documents seen by :meth:`update_vocabulary`.
    Tokens never seen, or present in every document (IDF 0), weigh 1.
    """

    name = "local"
    is_local = True

    def __init__(self, dimension: int = 300):
        self.dimension = dimension
        self.document_count = 0
        self.vocabulary: Dict[str, int] = {}  # token -> document frequency
        self.idf: Dict[str, float] = {}
        self._lock = threading.RLock()

    def word_vector(self, token: str) -> np.ndarray:
        """Deterministic unit vector for a token."""
        digest = hashlib.sha256(token.lower().encode("utf-8")).digest()
        rng = np.random.default_rng(int.from_bytes(digest[:8], "big"))
        vector = rng.standard_normal(self.dimension)
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector = vector / norm
        return vector

    def update_vocabulary(self, texts: Iterable[str]) -> None:
        """Fold a batch of documents into the running document frequencies."""
        with self._lock:
            for text in texts:
                self.document_count += 1
                for token in set(tokenize(text)):
                    self.vocabulary[token] = self.vocabulary.get(token, 0) + 1

            n = self.document_count
            self.idf = {
                token: math.log(n / df)
                for token, df in self.vocabulary.items()
            }

    def tfidf_weights(self, tokens: Sequence[str]) -> Dict[str, float]:
        counts = Counter(tokens)
        total = len(tokens)
        with self._lock:
            return {token: (count / total) * (self.idf.get(token) or 1.0)
                    for token, count in counts.items()}

    def embed_text(self, text: str) -> List[float]:
        """Generate the TF-IDF embedding; never raises."""
        try:
            tokens = tokenize(text)
            if not tokens:
                return [0.0] * self.dimension

            embedding = np.zeros(self.dimension)
            total_weight = 0.0
            for token, weight in self.tfidf_weights(tokens).items():
                embedding += self.word_vector(token) * weight
                total_weight += weight

            norm = np.linalg.norm(embedding)
            if total_weight <= 0 or norm == 0 or not np.isfinite(norm):
                return self._random_vector()
            return (embedding / norm).tolist()

        except Exception as e:
            logger.warning(f"Local embedding failed, using random fallback: {e}")
            return self._random_vector()

    def _random_vector(self) -> List[float]:
        vector = np.random.default_rng().random(self.dimension) - 0.5
        return (vector / (np.linalg.norm(vector) or 1.0)).tolist()

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        return self.dimension


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models."""

    name = "sentence_transformers"

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self.model_name = model_name
        self._model = None
        self._dimension = None

    @property
    def model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed_text(self, text: str) -> List[float]:
        """Generate embedding vector using sentence transformers."""
        try:
            embedding = self.model.encode(text, convert_to_tensor=False)
        except Exception as e:
            raise ProviderUnavailableError(self.name, str(e)) from e
        return embedding.tolist()

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        if self._dimension is None:
            self._dimension = self.model.get_sentence_embedding_dimension()
        return self._dimension


class OpenAIEmbedding(IEmbeddingProvider):
    """OpenAI embeddings API provider."""

    name = "openai"

    def __init__(self, model_name: str = "text-embedding-3-large", api_key: Optional[str] = None,
                 client=None):
        self.model_name = model_name
        self.api_key = api_key
        self._client = client

    @property
    def client(self):
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(api_key=self.api_key)
        return self._client

    def embed_text(self, text: str) -> List[float]:
        try:
            response = self.client.embeddings.create(
                model=self.model_name,
                input=text,
                encoding_format="float",
                dimensions=self.get_dimension(),
            )
            return list(response.data[0].embedding)
        except Exception as e:
            raise ProviderUnavailableError(self.name, str(e)) from e

    def get_dimension(self) -> int:
        return 3072 if "3-large" in self.model_name else 1536


class OllamaEmbedding(IEmbeddingProvider):
    """Embeddings from a local Ollama server."""

    name = "ollama"

    def __init__(self, model_name: str = "nomic-embed-text"):
        self.model_name = model_name
        self._dimension = None

    def embed_text(self, text: str) -> List[float]:
        import ollama

        try:
            response = ollama.embeddings(model=self.model_name, prompt=text)
        except ollama.ResponseError as e:
            raise ProviderUnavailableError(self.name, f"Ollama model error: {e}") from e
        except Exception as e:
            raise ProviderUnavailableError(self.name, str(e)) from e

        embedding = list(response.get("embedding") or [])
        if not embedding:
            raise ProviderUnavailableError(self.name, "empty embedding")
        self._dimension = len(embedding)
        return embedding

    def get_dimension(self) -> int:
        if self._dimension is None:
            self._dimension = len(self.embed_text("test"))
        return self._dimension


class EmbeddingChain:
    """Ordered provider strategies tried until one answers.

    External providers run under a bounded timeout. Any failure, timeout or a
    vector of the wrong length moves on to the next provider; the last local
    provider's answer is always returned.
    """

    def __init__(self, providers: Sequence[IEmbeddingProvider], timeout_sec: float = 10.0):
        providers = list(providers)
        if not providers or not providers[-1].is_local:
            providers.append(LocalTfidfEmbedding())
        self.providers = providers
        self.timeout_sec = timeout_sec
        self._executor = None

    @property
    def local(self) -> IEmbeddingProvider:
        return self.providers[-1]

    def _call_with_timeout(self, provider: IEmbeddingProvider, text: str) -> List[float]:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="embed")
        future = self._executor.submit(provider.embed_text, text)
        try:
            return future.result(timeout=self.timeout_sec)
        except FuturesTimeoutError:
            future.cancel()
            raise ProviderUnavailableError(provider.name, f"timed out after {self.timeout_sec}s")

    def embed(self, text: str, expected_dimension: Optional[int] = None) -> Tuple[List[float], str]:
        """Embed text with the first provider that succeeds.

        Returns:
            (vector, provider name)
        """
        for provider in self.providers[:-1]:
            try:
                vector = self._call_with_timeout(provider, text)
            except Exception as e:
                logger.log_provider_fallback(provider.name, str(e))
                continue

            if expected_dimension and len(vector) != expected_dimension:
                logger.log_provider_fallback(
                    provider.name, f"dimension {len(vector)} != store dimension {expected_dimension}")
                continue
            return vector, provider.name

        return self.local.embed_text(text), self.local.name

    def update_vocabulary(self, texts: Iterable[str]) -> None:
        texts = list(texts)
        for provider in self.providers:
            if hasattr(provider, "update_vocabulary"):
                provider.update_vocabulary(texts)

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
