"""REST client for the external configuration store and analytics API."""

import logging
from functools import partial
from typing import Any, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from attribution_engine.core.config import StoreConfig
from attribution_engine.core.exceptions import AttributionEngineError, PersistenceError
from attribution_engine.core.retry import RetryPolicy, exponential_backoff_with_jitter
from attribution_engine.models.configuration import ModelConfiguration, TimeRange
from attribution_engine.models.results import AttributionResult, ModelPerformanceMetrics
from attribution_engine.models.touchpoint import TouchpointSequence
from attribution_engine.models.validation import ValidationError

logger = logging.getLogger(__name__)

MODELS_PATH = "/attribution/models"
TOUCHPOINTS_PATH = "/attribution/touchpoints"
ANALYSIS_PATH = "/attribution/analysis"
PERFORMANCE_PATH = f"{ANALYSIS_PATH}/performance"


class StoreRejection(AttributionEngineError):
    """Raised when the store refuses a configuration with validation errors."""

    def __init__(self, errors: list[ValidationError], status_code: int = 422):
        super().__init__(
            f"Configuration rejected by store ({status_code}): "
            + "; ".join(str(error) for error in errors)
        )
        self.errors = errors
        self.status_code = status_code


class ConfigurationStoreClient:
    """Async client for the attribution REST API.

    Network failures, timeouts, 429 and 5xx responses are retried with
    exponential backoff; once the budget is spent they surface as
    ``PersistenceError``.
    """

    def __init__(
        self,
        config: Optional[StoreConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        """Initialize the store client.

        Args:
            config: Store settings
            client: Preconfigured HTTP client (owned by the caller)
            retry_policy: Retry policy override
        """
        self.config = config or StoreConfig()

        headers = {"Accept": "application/json"}
        if self.config.api_token:
            headers["Authorization"] = f"Bearer {self.config.api_token}"

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.request_timeout_seconds,
            headers=headers,
        )
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=self.config.max_request_retries + 1,
            backoff_func=partial(
                exponential_backoff_with_jitter,
                base_delay=self.config.retry_base_delay_seconds,
                max_delay=self.config.retry_max_delay_seconds,
            ),
            retriable_exceptions=(PersistenceError,),
        )

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ConfigurationStoreClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def get_active_configuration(self) -> Optional[ModelConfiguration]:
        """Fetch the active configuration.

        Returns:
            The active configuration, or None if the store has none
        """
        response = await self._request("GET", MODELS_PATH)
        if response.status_code == 404:
            return None
        self._raise_for_client_error(response)
        return self._parse_configuration(response)

    async def put_configuration(self, config: ModelConfiguration) -> ModelConfiguration:
        """Persist a candidate configuration.

        Args:
            config: Configuration to persist

        Returns:
            The configuration as persisted by the store

        Raises:
            StoreRejection: If the store rejects it with validation errors
            PersistenceError: If the store cannot be reached or fails
        """
        response = await self._request("PUT", MODELS_PATH, json=config.to_wire())

        if 400 <= response.status_code < 500:
            errors = self._parse_validation_errors(response)
            if errors:
                raise StoreRejection(errors, status_code=response.status_code)
            self._raise_for_client_error(response)

        logger.info(
            f"Persisted configuration {config.config_id}",
            extra={"config_id": config.config_id},
        )
        return self._parse_configuration(response)

    async def fetch_touchpoint_sequences(
        self, time_range: TimeRange
    ) -> list[TouchpointSequence]:
        """Fetch touchpoint sequences for a time range.

        Malformed sequences are skipped and logged.
        """
        response = await self._request(
            "GET", TOUCHPOINTS_PATH, params={"range": time_range.as_query()}
        )
        self._raise_for_client_error(response)
        return self._parse_items(response, "sequences", TouchpointSequence)

    async def request_analysis(
        self, model: str, time_range: TimeRange
    ) -> list[AttributionResult]:
        """Trigger or query computed results for a model and time range."""
        response = await self._request(
            "POST",
            ANALYSIS_PATH,
            json={"model": model, "range": time_range.to_wire()},
        )
        self._raise_for_client_error(response)
        return self._parse_items(response, "results", AttributionResult)

    async def request_model_performance(
        self, model_id: str, time_range: TimeRange
    ) -> ModelPerformanceMetrics:
        """Query accuracy metrics for a stored model over a time range.

        Args:
            model_id: Identifier of the stored configuration
            time_range: Period the metrics cover

        Returns:
            Accuracy, precision, recall, F1 and any custom metrics

        Raises:
            PersistenceError: If the store fails or returns an unreadable body
        """
        response = await self._request(
            "POST",
            PERFORMANCE_PATH,
            json={"modelId": model_id, "timeRange": time_range.to_wire()},
        )
        self._raise_for_client_error(response)

        body = self._json(response)
        if isinstance(body, dict) and isinstance(body.get("metrics"), dict):
            body = body["metrics"]
        try:
            metrics = ModelPerformanceMetrics.model_validate(body)
        except PydanticValidationError as e:
            raise PersistenceError(
                f"Store returned invalid performance metrics: {e.error_count()} errors",
                status_code=response.status_code,
                retryable=False,
            ) from e
        if metrics.model_id is None:
            metrics = metrics.model_copy(update={"model_id": model_id})
        return metrics

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        return await self.retry_policy.execute(self._send, method, path, **kwargs)

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise PersistenceError(f"{method} {path} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise PersistenceError(f"{method} {path} failed: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise PersistenceError(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _raise_for_client_error(response: httpx.Response) -> None:
        if response.status_code >= 400:
            raise PersistenceError(
                f"{response.request.method} {response.request.url.path} "
                f"returned {response.status_code}",
                status_code=response.status_code,
                retryable=False,
            )

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise PersistenceError(
                f"Store returned a non-JSON body ({response.status_code})",
                status_code=response.status_code,
                retryable=False,
            ) from e

    def _parse_configuration(self, response: httpx.Response) -> ModelConfiguration:
        body = self._json(response)
        if isinstance(body, dict) and isinstance(body.get("configuration"), dict):
            body = body["configuration"]
        try:
            return ModelConfiguration.model_validate(body)
        except PydanticValidationError as e:
            raise PersistenceError(
                f"Store returned an invalid configuration: {e.error_count()} errors",
                status_code=response.status_code,
                retryable=False,
            ) from e

    def _parse_validation_errors(self, response: httpx.Response) -> list[ValidationError]:
        try:
            body = response.json()
        except ValueError:
            return []
        raw_errors = body.get("errors") if isinstance(body, dict) else None
        if not isinstance(raw_errors, list):
            return []

        errors = []
        for raw in raw_errors:
            try:
                errors.append(ValidationError.model_validate(raw))
            except PydanticValidationError:
                logger.warning(f"Ignoring unrecognized store validation error: {raw!r}")
        return errors

    def _parse_items(self, response: httpx.Response, key: str, model: type) -> list:
        body = self._json(response)
        raw_items = body.get(key, []) if isinstance(body, dict) else body
        if not isinstance(raw_items, list):
            raise PersistenceError(
                f"Store response has no '{key}' list",
                status_code=response.status_code,
                retryable=False,
            )

        items = []
        for raw in raw_items:
            try:
                items.append(model.model_validate(raw))
            except PydanticValidationError as e:
                logger.warning(
                    f"Skipping malformed {model.__name__} from store: {e.error_count()} errors"
                )
        return items
