"""
Model Catalog
=============
Immutable table of per-model budget metadata.

Lookup is by exact identifier first; snapshot ids carrying a trailing
`-YYYY-MM-DD` date fall back to the metadata of their base model.
"""

import json
import logging
import re
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from context_budget.exceptions.config import ConfigurationError
from context_budget.model_manager.structs import ModelMetaData
from context_budget.structs import CallType
from context_budget.utils.encoders import Encoder, TiktokenEncoder, encoding_name_for_model

logger = logging.getLogger(__name__)

_SNAPSHOT_PATTERN = re.compile(r"^(.+)-(\d{4}-\d{2}-\d{2})$")


class ModelCatalog:
    """
    Read-only mapping from model id to ModelMetaData.

    Build it once and pass it to the counter, the trimmer and the
    recoverer. `with_model()` returns a new catalog instead of mutating.
    """

    def __init__(self, models: Iterable[ModelMetaData] = ()):
        self._models = MappingProxyType({m.name: m for m in models})

    # === Lookup ===

    def get(self, model: str) -> Optional[ModelMetaData]:
        data = self._models.get(model)
        if data is not None:
            return data

        match = _SNAPSHOT_PATTERN.match(model)
        if match:
            data = self._models.get(match.group(1))
            if data is not None:
                return data.renamed(model)
        return None

    def require(self, model: str, default: Optional[ModelMetaData] = None) -> ModelMetaData:
        data = self.get(model)
        if data is not None:
            return data
        if default is not None:
            return default
        raise ConfigurationError(
            f"No metadata found for model {model}. Consider registering model data.",
            model_name=model,
        )

    def context_size(self, model: str, default: Optional[int] = None) -> int:
        data = self.get(model)
        if data is not None:
            return data.context_size
        if default is not None:
            return default
        raise ConfigurationError(
            f"No context size defined for model {model}.", model_name=model
        )

    def call_type(self, model: str, default: Optional[CallType] = None) -> CallType:
        data = self.get(model)
        if data is not None:
            return data.call_type
        if default is not None:
            return default
        raise ConfigurationError(
            f"No call type defined for model {model}.", model_name=model
        )

    def encoder(self, model: str, default: Optional[Encoder] = None) -> Encoder:
        """Encoder for `model`, from its metadata or tiktoken's own mapping."""
        data = self.get(model)
        encoding = data.encoding if data is not None else None
        if encoding is None and data is not None:
            encoding = encoding_name_for_model(model)
        if encoding is not None:
            return TiktokenEncoder(encoding)
        if default is not None:
            return default
        raise ConfigurationError(
            f"No tokenizer found for model {model}. Consider registering model data.",
            model_name=model,
        )

    # === Immutable updates ===

    def with_model(self, data: ModelMetaData) -> "ModelCatalog":
        models = dict(self._models)
        models[data.name] = data
        return ModelCatalog(models.values())

    def without_model(self, model: str) -> "ModelCatalog":
        return ModelCatalog(m for name, m in self._models.items() if name != model)

    # === Loading ===

    @classmethod
    def from_json(cls, path: Union[str, Path], base: Optional["ModelCatalog"] = None) -> "ModelCatalog":
        """
        Load metadata from a JSON file shaped like
        {"models": {"<id>": {"context_size": ..., "call_type": "tools", ...}}}.

        Entries override those of `base` (if given).
        """
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f"Failed to load model catalog from {path}: {e}", original_error=e
            ) from e

        models: Dict[str, ModelMetaData] = dict(base._models) if base else {}
        for name, info in (data.get("models") or {}).items():
            try:
                models[name] = ModelMetaData(name=name, **info)
            except PydanticValidationError as e:
                raise ConfigurationError(
                    f"Invalid metadata for model {name} in {path}",
                    model_name=name,
                    original_error=e,
                ) from e

        logger.info(f"Loaded {len(models)} model definitions from {path}")
        return cls(models.values())

    # === Mapping protocol ===

    def __contains__(self, model: object) -> bool:
        return isinstance(model, str) and self.get(model) is not None

    def __iter__(self) -> Iterator[str]:
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)

    def __repr__(self) -> str:
        return f"ModelCatalog({len(self)} models)"


def _meta(name, context_size, max_new_tokens=None, call_type=CallType.TOOLS, encoding="o200k_base"):
    return ModelMetaData(
        name=name,
        context_size=context_size,
        max_new_tokens=max_new_tokens,
        call_type=call_type,
        encoding=encoding,
    )


_DEFAULT_MODELS = (
    # Reasoning models
    _meta("o1", 200_000, 100_000),
    _meta("o1-mini", 128_000, 65_536, CallType.NONE),
    _meta("o1-preview", 128_000, 32_768, CallType.NONE),
    _meta("o1-pro", 200_000, 100_000),
    _meta("o3", 200_000, 100_000),
    _meta("o3-mini", 200_000, 100_000),
    _meta("o4-mini", 200_000, 100_000),
    _meta("codex-mini-latest", 200_000, 100_000),
    # Flagship chat models
    _meta("gpt-4.1", 1_047_576, 32_768),
    _meta("gpt-4.1-mini", 1_047_576, 32_768),
    _meta("gpt-4.1-nano", 1_047_576, 32_768),
    _meta("gpt-4o", 128_000, 16_384),
    _meta("gpt-4o-2024-05-13", 128_000, 4_096),
    _meta("gpt-4o-mini", 128_000, 16_384),
    _meta("chatgpt-4o-latest", 128_000, 16_384, CallType.NONE),
    _meta("gpt-5", 272_000, 128_000),
    _meta("gpt-5-mini", 272_000, 128_000),
    _meta("gpt-5-nano", 272_000, 128_000),
    _meta("gpt-5-chat-latest", 128_000, 16_384),
    _meta("gpt-5.1", 272_000, 128_000),
    _meta("gpt-5.2", 272_000, 128_000),
    # Older models
    _meta("gpt-4-turbo", 128_000, 4_096, encoding="cl100k_base"),
    _meta("gpt-4-turbo-preview", 128_000, 4_096, encoding="cl100k_base"),
    _meta("gpt-4-0125-preview", 128_000, 4_096, encoding="cl100k_base"),
    _meta("gpt-4-1106-preview", 128_000, 4_096, encoding="cl100k_base"),
    _meta("gpt-4", 8_192, 8_192, CallType.FUNCTIONS, "cl100k_base"),
    _meta("gpt-4-0613", 8_192, 8_192, CallType.FUNCTIONS, "cl100k_base"),
    _meta("gpt-3.5-turbo", 16_385, 4_096, CallType.FUNCTIONS, "cl100k_base"),
    _meta("gpt-3.5-turbo-0125", 16_385, 4_096, CallType.FUNCTIONS, "cl100k_base"),
    _meta("gpt-3.5-turbo-1106", 16_385, 4_096, CallType.FUNCTIONS, "cl100k_base"),
    _meta("gpt-3.5-turbo-0301", 4_096, 4_096, CallType.NONE, "cl100k_base"),
    # Embeddings
    _meta("text-embedding-3-large", 8_191, None, CallType.NONE, "cl100k_base"),
    _meta("text-embedding-3-small", 8_192, None, CallType.NONE, "cl100k_base"),
    _meta("text-embedding-ada-002", 8_192, None, CallType.NONE, "cl100k_base"),
)

DEFAULT_CATALOG = ModelCatalog(_DEFAULT_MODELS)
