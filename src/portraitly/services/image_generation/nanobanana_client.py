"""NanoBanana submit/poll adapter.

Submission returns a task id; status is reported through ``successFlag``
(0 generating, 1 success, 2/3 failed). Task ids and result URLs are located
with ordered extraction rules because the response layout is not stable.
"""

from typing import Any, Sequence

import httpx
import structlog

from portraitly.services.exceptions import PermanentError, PollFailedError, TransientError
from portraitly.services.image_generation.base import (
    AsyncImageProvider,
    SourceImage,
    TaskState,
    TaskStatus,
)
from portraitly.services.image_generation.extraction import (
    RESULT_URL_RULES,
    TASK_ID_RULES,
    ExtractionRule,
    extract_first,
)
from portraitly.services.image_generation.http_errors import (
    body_excerpt,
    raise_for_provider_status,
    transport_error,
)
from portraitly.services.prompting.composer import ComposedPrompt

logger = structlog.get_logger(__name__)

IMG2IMG_PREFIX = "img2img, highly detailed portrait, exact facial features of input image"

SUCCESS_FLAG_PROCESSING = 0
SUCCESS_FLAG_SUCCESS = 1
SUCCESS_FLAGS_FAILED = (2, 3)


class NanoBananaProvider(AsyncImageProvider):
    """Asynchronous image-to-image provider (submit, then poll task details)."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        base_url: str = "https://api.nanobananaapi.ai/api/v1/nanobanana",
        resolution: str = "2K",
        aspect_ratio: str = "1:1",
        callback_url: str = "https://example.com/callback",
        task_id_rules: Sequence[ExtractionRule] = TASK_ID_RULES,
        result_url_rules: Sequence[ExtractionRule] = RESULT_URL_RULES,
    ):
        """Initialize adapter.

        Args:
            http_client: Shared httpx client (owned by the application lifespan)
            api_key: NanoBanana API key (from NANOBANANA_API_KEY env var)
            base_url: API root containing generate-pro and get-task-details
            resolution: Output resolution requested on submit
            aspect_ratio: Output aspect ratio requested on submit
            callback_url: Required by the API; results are polled, not pushed
            task_id_rules: Ordered rules locating the task id in submit responses
            result_url_rules: Ordered rules locating the result URL in status responses
        """
        self.http_client = http_client
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.resolution = resolution
        self.aspect_ratio = aspect_ratio
        self.callback_url = callback_url
        self.task_id_rules = tuple(task_id_rules)
        self.result_url_rules = tuple(result_url_rules)
        self.provider_id = "nanobanana"

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def build_prompt(self, prompt: ComposedPrompt) -> str:
        # This API takes no negative prompt; identity preservation goes in the prefix
        return f"{IMG2IMG_PREFIX}, {prompt.positive}"

    async def submit(self, source: SourceImage, prompt: ComposedPrompt) -> str:
        """Submit a generate-pro task.

        Returns:
            Provider-issued task id

        Raises:
            TransientError: Network failure, rate limit, service unavailable
            PermanentError: Missing key, rejected request, or no task id in the response
        """
        if not self.api_key:
            raise PermanentError("NANOBANANA_API_KEY not configured")

        payload = {
            "prompt": self.build_prompt(prompt),
            "imageUrls": [source.url],
            "resolution": self.resolution,
            "aspectRatio": self.aspect_ratio,
            "callBackUrl": self.callback_url,
        }
        try:
            response = await self.http_client.post(
                f"{self.base_url}/generate-pro", headers=self.headers, json=payload
            )
        except httpx.HTTPError as e:
            raise transport_error(e, self.provider_id) from e

        raise_for_provider_status(response, self.provider_id)

        try:
            body = response.json()
        except ValueError as e:
            raise PermanentError(f"{self.provider_id}: submission response was not JSON") from e

        match = extract_first(body, self.task_id_rules)
        if match is None:
            logger.error(
                "nanobanana.submit.no_task_id",
                available_keys=sorted(body.keys()) if isinstance(body, dict) else None,
            )
            raise PermanentError(f"{self.provider_id}: no task id in submission response")

        rule_name, task_id = match
        logger.debug("nanobanana.submit.ok", task_id=task_id, matched_rule=rule_name)
        return task_id

    async def get_task_status(self, task_id: str) -> TaskStatus:
        """Query task details once and normalize the response.

        Raises:
            TransientError: Transport failure, 5xx/429, or unparseable body
            PollFailedError: Status endpoint rejected the request (other 4xx)
        """
        try:
            response = await self.http_client.get(
                f"{self.base_url}/get-task-details",
                headers=self.headers,
                params={"taskId": task_id},
            )
        except httpx.HTTPError as e:
            raise transport_error(e, self.provider_id) from e

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientError(
                f"{self.provider_id}: status check unavailable ({response.status_code})"
            )
        if response.status_code >= 400:
            raise PollFailedError(
                f"API Error: {response.status_code} - {body_excerpt(response)}",
                code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise TransientError(f"{self.provider_id}: unparseable status response") from e

        return self.parse_status(body)

    def parse_status(self, body: Any) -> TaskStatus:
        """Map a task-details document onto TaskStatus.

        A missing or unrecognized successFlag is treated as still processing.
        """
        data = body.get("data") if isinstance(body, dict) else None
        data = data if isinstance(data, dict) else {}
        flag = data.get("successFlag")

        if flag == SUCCESS_FLAG_SUCCESS:
            match = extract_first(body, self.result_url_rules)
            if match is None:
                logger.error(
                    "nanobanana.status.result_missing", available_keys=sorted(data.keys())
                )
                return TaskStatus(state=TaskState.SUCCESS, result_ref=None)
            return TaskStatus(state=TaskState.SUCCESS, result_ref=match[1])

        if flag in SUCCESS_FLAGS_FAILED:
            code = data.get("errorCode", flag)
            return TaskStatus(
                state=TaskState.FAILED,
                code=str(code) if code is not None else None,
                message=data.get("errorMessage") or "Generation failed",
            )

        return TaskStatus(state=TaskState.PROCESSING)
