"""
Model Advisor — Workers AI model recommendations per use case.

A static capability table (data/model_capabilities.yaml) maps model ids to
capability tags and per-use-case scores. It is loaded once at import and is
read-only afterwards, so concurrent callers share it freely.

recommend_model() picks the highest-scoring model for a use case, with the
next three as alternatives. A use case nobody scores falls back to a
versatile default instead of failing. advise_model() also fetches the live
Workers AI catalog and buckets it by task family.

Public API:
    MODEL_CAPABILITIES                               — model id → ModelCapabilityEntry
    USE_CASES                                        — known use-case tags
    DEFAULT_MODEL
    recommend_model(use_case, catalog=None)          → ModelRecommendation
    advise_model_offline(use_case)                   → ModelRecommendation
    fetch_model_catalog(account_id, api_token, ...)  → list[dict]   (async)
    minify_model_catalog(models)                     → MinifiedModelCatalog
    advise_model(use_case, settings=None, ...)       → ModelAdvice  (async)
    get_available_use_cases()                        → list[str]
    get_model_for_binding(use_case)                  → str
    model_has_capability(model_id, tag)              → bool
    model_context_json()                             → str
"""

import json
import logging
import pathlib
from dataclasses import asdict, dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

import httpx
import yaml

from unified_ai.config import AISettings
from unified_ai.errors import ConfigError, MissingCredentialError, ProviderTransportError

logger = logging.getLogger(__name__)

_TABLE_PATH = pathlib.Path(__file__).resolve().parent / "data" / "model_capabilities.yaml"

CATALOG_URL = "https://api.cloudflare.com/client/v4/accounts/{account_id}/ai/models/search"

USE_CASES = (
    "strong-reasoning",
    "fast-inference",
    "code-generation",
    "vision",
    "multimodal",
    "embeddings",
    "image-generation",
    "speech-to-text",
    "text-to-speech",
    "translation",
    "summarization",
    "classification",
    "function-calling",
    "long-context",
    "multilingual",
    "cost-effective",
    "math-reasoning",
    "safety-moderation",
    "object-detection",
    "real-time-audio",
)

DEFAULT_MODEL = "@cf/meta/llama-3.1-8b-instruct"
DEFAULT_ALTERNATIVES = ("@cf/meta/llama-3.3-70b-instruct-fp8-fast", "@cf/qwen/qwen3-30b-a3b-fp8")
DEFAULT_TASK_TYPE = "Text Generation"

# Catalog task name → MinifiedModelCatalog bucket.
TASK_MAPPING = {
    "Text Generation": "text_generation",
    "Text Embeddings": "embeddings",
    "Text-to-Image": "image_generation",
    "Automatic Speech Recognition": "speech",
    "Text-to-Speech": "speech",
    "Text Classification": "classification",
    "Translation": "translation",
    "Summarization": "summarization",
    "Object Detection": "object_detection",
    "Image-to-Text": "image_to_text",
    "Image Classification": "classification",
    "Voice Activity Detection": "voice_activity",
}

# First matching capability tag decides the task type of a recommendation.
_TASK_TYPE_BY_TAG = (
    (("embeddings",), "Text Embeddings"),
    (("image-gen",), "Text-to-Image"),
    (("asr",), "Automatic Speech Recognition"),
    (("tts",), "Text-to-Speech"),
    (("translation",), "Translation"),
    (("classification", "reranking"), "Text Classification"),
    (("summarization",), "Summarization"),
    (("object-detection",), "Object Detection"),
    (("vad",), "Voice Activity Detection"),
)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ModelCapabilityEntry:
    """Capability tags and per-use-case scores for one model."""
    model_id: str
    capabilities: tuple
    scores: Mapping[str, int]

    def score_for(self, use_case: str) -> int:
        return self.scores.get(use_case, 0)


@dataclass(frozen=True)
class ModelRecommendation:
    model_id: str
    reason: str
    alternatives: tuple = ()
    task_type: str = DEFAULT_TASK_TYPE
    capabilities: tuple = ()

    def to_dict(self) -> dict:
        return {
            "model_id": self.model_id,
            "reason": self.reason,
            "alternatives": list(self.alternatives),
            "task_type": self.task_type,
            "capabilities": list(self.capabilities),
        }


@dataclass(frozen=True)
class MinifiedModel:
    id: str
    task: str
    tags: Optional[tuple] = None
    beta: Optional[bool] = None


@dataclass
class MinifiedModelCatalog:
    """Live catalog reduced to per-task-family buckets."""
    text_generation: list[MinifiedModel] = field(default_factory=list)
    embeddings: list[MinifiedModel] = field(default_factory=list)
    image_generation: list[MinifiedModel] = field(default_factory=list)
    speech: list[MinifiedModel] = field(default_factory=list)
    classification: list[MinifiedModel] = field(default_factory=list)
    translation: list[MinifiedModel] = field(default_factory=list)
    summarization: list[MinifiedModel] = field(default_factory=list)
    object_detection: list[MinifiedModel] = field(default_factory=list)
    image_to_text: list[MinifiedModel] = field(default_factory=list)
    voice_activity: list[MinifiedModel] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ModelAdvice:
    recommendation: ModelRecommendation
    catalog: MinifiedModelCatalog


# ---------------------------------------------------------------------------
# Capability table
# ---------------------------------------------------------------------------

def load_capability_table(path: Optional[pathlib.Path] = None) -> tuple[Mapping, Mapping]:
    """Load the capability table and reason templates from YAML.

    Raises:
        ConfigError: if the file is missing or an entry is malformed.
    """
    path = path or _TABLE_PATH
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as exc:
        raise ConfigError(f"Model capability table not found at {path}") from exc

    entries = {}
    for model_id, raw in (data.get("models") or {}).items():
        if not isinstance(raw, dict) or "capabilities" not in raw:
            raise ConfigError(f"Capability entry for '{model_id}' must define 'capabilities'")
        scores = {}
        for use_case, score in (raw.get("score") or {}).items():
            if not isinstance(score, int) or not 0 <= score <= 100:
                raise ConfigError(f"Score for '{model_id}'/{use_case} must be an integer 0-100")
            scores[str(use_case)] = score
        entries[model_id] = ModelCapabilityEntry(
            model_id=model_id,
            capabilities=tuple(str(tag) for tag in raw["capabilities"]),
            scores=MappingProxyType(scores),
        )

    reasons = {str(k): str(v) for k, v in (data.get("reasons") or {}).items()}
    logger.debug("Loaded %d model capability entries from %s", len(entries), path)
    return MappingProxyType(entries), MappingProxyType(reasons)


MODEL_CAPABILITIES, RECOMMENDATION_REASONS = load_capability_table()


# ---------------------------------------------------------------------------
# Recommendation
# ---------------------------------------------------------------------------

def _task_type(capabilities: tuple) -> str:
    for tags, task_type in _TASK_TYPE_BY_TAG:
        if any(tag in capabilities for tag in tags):
            return task_type
    return DEFAULT_TASK_TYPE


def recommend_model(
    use_case: str,
    catalog: Optional[MinifiedModelCatalog] = None,
) -> ModelRecommendation:
    """Best model for a use case from the capability table.

    catalog is accepted for callers of advise_model() but does not yet
    influence scoring.
    """
    scored = [
        (entry.score_for(use_case), entry)
        for entry in MODEL_CAPABILITIES.values()
        if entry.score_for(use_case) > 0
    ]
    # sort is stable, so equal scores keep table order
    scored.sort(key=lambda pair: pair[0], reverse=True)

    if not scored:
        logger.info("No model scored for use case '%s'; using default", use_case)
        return ModelRecommendation(
            model_id=DEFAULT_MODEL,
            reason=(
                f'No specific model found for "{use_case}". '
                "Defaulting to Llama 3.1 8B as a versatile option."
            ),
            alternatives=DEFAULT_ALTERNATIVES,
            task_type=DEFAULT_TASK_TYPE,
            capabilities=("multilingual", "dialogue"),
        )

    best_score, best = scored[0]
    template = RECOMMENDATION_REASONS.get(use_case) or (
        f"Best match for {use_case} with score {best_score}/100"
    )
    return ModelRecommendation(
        model_id=best.model_id,
        reason=template.replace("{model}", best.model_id),
        alternatives=tuple(entry.model_id for _, entry in scored[1:4]),
        task_type=_task_type(best.capabilities),
        capabilities=best.capabilities,
    )


def advise_model_offline(use_case: str) -> ModelRecommendation:
    """Recommendation from the curated table only; no network call."""
    return recommend_model(use_case)


def get_available_use_cases() -> list[str]:
    return list(USE_CASES)


def get_model_for_binding(use_case: str) -> str:
    return recommend_model(use_case).model_id


def model_has_capability(model_id: str, tag: str) -> bool:
    entry = MODEL_CAPABILITIES.get(model_id)
    return entry is not None and tag in entry.capabilities


def model_context_json() -> str:
    """Compact JSON of the table: id → first three tags and scored use cases."""
    compact = {
        model_id: {"c": list(entry.capabilities[:3]), "s": list(entry.scores)}
        for model_id, entry in MODEL_CAPABILITIES.items()
    }
    return json.dumps(compact, separators=(",", ":"))


# ---------------------------------------------------------------------------
# Live catalog
# ---------------------------------------------------------------------------

async def fetch_model_catalog(
    account_id: str,
    api_token: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    timeout: float = 60.0,
) -> list[dict]:
    """Fetch the full Workers AI model list for an account.

    Raises:
        MissingCredentialError: if the account id or token is empty.
        ProviderTransportError: on HTTP failure or an unsuccessful API response.
    """
    if not account_id or not api_token:
        raise MissingCredentialError("Missing CLOUDFLARE_ACCOUNT_ID or CLOUDFLARE_API_TOKEN")

    url = CATALOG_URL.format(account_id=account_id)
    headers = {"Authorization": f"Bearer {api_token}", "Content-Type": "application/json"}
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(url, headers=headers)
    except httpx.HTTPError as exc:
        raise ProviderTransportError("workers-ai", f"Failed to fetch models: {exc}") from exc

    if response.status_code >= 400:
        raise ProviderTransportError(
            "workers-ai",
            f"Failed to fetch models: {response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
        )

    data: dict[str, Any] = response.json()
    if not data.get("success"):
        raise ProviderTransportError("workers-ai", f"API error: {json.dumps(data.get('errors'))}")
    return list(data.get("result") or [])


def minify_model_catalog(models: list[dict]) -> MinifiedModelCatalog:
    """Bucket catalog models by task family; unmapped tasks count as text generation."""
    catalog = MinifiedModelCatalog()
    for model in models:
        task_name = (model.get("task") or {}).get("name") or ""
        bucket = TASK_MAPPING.get(task_name, "text_generation")
        tags = model.get("tags")
        getattr(catalog, bucket).append(MinifiedModel(
            id=model.get("name") or model.get("id", ""),
            task=task_name or "Unknown",
            tags=tuple(tags) if tags is not None else None,
            beta=model.get("beta"),
        ))
    return catalog


async def advise_model(
    use_case: str,
    settings: Optional[AISettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ModelAdvice:
    """Fetch the live catalog, bucket it and recommend a model."""
    settings = settings or AISettings.from_env()
    models = await fetch_model_catalog(
        settings.cloudflare_account_id or "",
        settings.cloudflare_api_token or "",
        transport=transport,
        timeout=settings.request_timeout,
    )
    catalog = minify_model_catalog(models)
    return ModelAdvice(recommendation=recommend_model(use_case, catalog), catalog=catalog)
