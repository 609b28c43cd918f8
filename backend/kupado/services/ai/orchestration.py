"""
AI request orchestration.

One ``invoke`` drives a feature through:

    validate -> cache check -> generate -> persist -> (cache write, usage log)

Responsibilities:
- Fail fast on missing input, before any store or provider call
- Serve cacheable features from ``ai_cache`` while the entry is unexpired
- Time the provider call only (the logged latency excludes store work)
- Persist the feature result through its ResultSink
- Write cache entries and usage logs in the background

NON-responsibilities:
- Retrying the provider (the provider client owns its retry policy)
- Deciding what the overload condition is (typed by the provider client)
"""
import os
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from kupado.core.background import BackgroundTasks
from kupado.core.database import Store, get_store
from kupado.core.errors import ConfigurationError, ProviderError, ProviderOverloadedError
from kupado.core.logging import get_logger
from kupado.core.metrics import record_ai_generation
from kupado.services.ai.cache import (
    DEFAULT_CACHE_TTL,
    compute_cache_key,
    get_cached_response,
    store_cached_response,
)
from kupado.services.ai.features import FEATURES, FeatureDefinition, FeatureType
from kupado.services.ai.llm_client import StructuredGenerator, get_providers
from kupado.services.ai.schema import (
    GenerationRequest,
    OrchestrationResult,
    SchemaValidationError,
    validate_output,
)

logger = get_logger(__name__)

USAGE_LOG_TABLE = "ai_usage_logs"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AIOrchestrationService:
    """Runs AI features end to end against injected store and providers."""

    def __init__(
        self,
        store: Store,
        providers: Mapping[str, StructuredGenerator],
        features: Optional[Mapping[FeatureType, FeatureDefinition]] = None,
        cache_ttl: timedelta = DEFAULT_CACHE_TTL,
        clock: Callable[[], datetime] = utcnow,
        timer: Callable[[], float] = time.perf_counter,
        background: Optional[BackgroundTasks] = None,
    ):
        self.store = store
        self.providers = providers
        self.features = features or FEATURES
        self.cache_ttl = cache_ttl
        self._clock = clock
        self._timer = timer
        self.background = background or BackgroundTasks()

    async def invoke(self, feature: FeatureType, request: GenerationRequest) -> OrchestrationResult:
        """
        Run one feature invocation.

        Raises:
            InvalidRequestError: required input missing (nothing external called)
            ProviderOverloadedError: provider over capacity, retry later
            ProviderError / StoreError / ConfigurationError: everything else
        """
        definition = self.features[FeatureType(feature)]
        definition.validate(request)

        now = self._clock()
        cache_key: Optional[str] = None

        if definition.is_cacheable:
            cache_key = compute_cache_key(definition.cache_input(request))
            cached = await get_cached_response(self.store, cache_key, definition.cache_label, now)
            if cached is not None:
                try:
                    result = validate_output(definition.feature.value, definition.output_model, cached)
                except SchemaValidationError as exc:
                    logger.warning("ai_cache_schema_invalid", feature=definition.feature.value, error=str(exc))
                else:
                    logger.info("ai_generation_served_from_cache", feature=definition.feature.value)
                    return OrchestrationResult(feature=definition.feature.value, result=result, cached=True)

        provider = self.providers.get(definition.provider)
        if provider is None:
            raise ConfigurationError(f"No {definition.provider} provider configured")

        prompt = definition.build_prompt(request)
        started = self._timer()
        try:
            raw = await provider.generate(prompt, definition.output_schema, images=definition.images(request))
        except ProviderOverloadedError:
            elapsed_ms = self._elapsed_ms(started)
            record_ai_generation(definition.feature.value, definition.provider, "overloaded")
            logger.warning("ai_generation_overloaded", feature=definition.feature.value, provider=definition.provider)
            self._log_usage(definition, request, elapsed_ms, success=False)
            raise
        except Exception as exc:
            elapsed_ms = self._elapsed_ms(started)
            record_ai_generation(definition.feature.value, definition.provider, "error")
            logger.error(
                "ai_generation_failed",
                feature=definition.feature.value,
                provider=definition.provider,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            self._log_usage(definition, request, elapsed_ms, success=False)
            raise
        elapsed_ms = self._elapsed_ms(started)

        try:
            result = validate_output(definition.feature.value, definition.output_model, raw)
        except SchemaValidationError as exc:
            record_ai_generation(definition.feature.value, definition.provider, "error", elapsed_ms)
            logger.warning("ai_generation_schema_invalid", feature=definition.feature.value, error=str(exc))
            self._log_usage(definition, request, elapsed_ms, success=False)
            raise ProviderError(
                f"AI returned an unexpected {definition.feature.value} format",
                provider=definition.provider,
            ) from exc

        record_ai_generation(definition.feature.value, definition.provider, "success", elapsed_ms)

        if definition.sink is not None:
            await definition.sink.write(self.store, request, result, elapsed_ms)

        if cache_key is not None:
            self.background.spawn(
                store_cached_response(self.store, cache_key, definition.cache_label, result, now, self.cache_ttl),
                name="ai_cache_write",
            )

        self._log_usage(definition, request, elapsed_ms, success=True)

        logger.info(
            "ai_generation_completed",
            feature=definition.feature.value,
            provider=definition.provider,
            generation_time_ms=elapsed_ms,
        )
        return OrchestrationResult(
            feature=definition.feature.value,
            result=result,
            generation_time_ms=elapsed_ms,
            cached=False,
        )

    def _elapsed_ms(self, started: float) -> int:
        return int(round((self._timer() - started) * 1000))

    def _log_usage(
        self,
        definition: FeatureDefinition,
        request: GenerationRequest,
        response_time_ms: int,
        success: bool,
    ) -> None:
        if not request.user_id:
            return
        entry: Dict[str, Any] = {
            "user_id": request.user_id,
            "feature_type": definition.usage_label,
            "response_time_ms": response_time_ms,
            "success": success,
        }
        metadata = definition.usage_metadata(request)
        if metadata:
            entry["metadata"] = metadata
        self.background.spawn(self.store.insert(USAGE_LOG_TABLE, entry), name="usage_log_write")


_ai_orchestration_service: Optional[AIOrchestrationService] = None


def get_ai_orchestration_service() -> AIOrchestrationService:
    """FastAPI dependency: process-wide orchestrator over the global store and providers."""
    global _ai_orchestration_service
    if _ai_orchestration_service is None:
        ttl_days = float(os.getenv("AI_CACHE_TTL_DAYS", "7") or "7")
        _ai_orchestration_service = AIOrchestrationService(
            store=get_store(),
            providers=get_providers(),
            cache_ttl=timedelta(days=ttl_days),
        )
    return _ai_orchestration_service


async def shutdown_ai_orchestration_service() -> None:
    if _ai_orchestration_service is not None:
        await _ai_orchestration_service.background.drain()
