# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Backend implementation for Qwen Image on fal.ai.

Requests go through the fal queue API: the job is submitted, its status is
polled (forwarding the model's progress logs at debug level) and the result is
fetched once the job completes. The dispatcher races the whole exchange against
the configured request timeout.
"""

import asyncio
import httpx
from loguru import logger
from qwen_image_mcp_server.consts import (
    FAL_KEY_ENV_VAR,
    FAL_QUEUE_BASE_URL,
    FAL_QWEN_IMAGE_MODEL_ID,
    QUEUE_POLL_INTERVAL,
)
from qwen_image_mcp_server.models.common import (
    ErrorKind,
    GeneratedImage,
    GenerationResult,
    OutputFormat,
)
from qwen_image_mcp_server.models.fal_models import FalQwenImageParams
from qwen_image_mcp_server.services.platform_common import (
    InferenceBackend,
    PlatformError,
    raise_for_platform_status,
    read_platform_json,
    wrap_transport_error,
)
from typing import Any, Dict, List, Optional, Tuple


_EXTENSIONS = {
    OutputFormat.JPEG: 'jpg',
    OutputFormat.PNG: 'png',
}


def build_fal_request(params: FalQwenImageParams) -> Dict[str, Any]:
    """Build the request body for the fal-ai/qwen-image endpoint.

    Args:
        params: Validated fal.ai parameters.

    Returns:
        Dictionary containing the formatted API request body.
    """
    request_body: Dict[str, Any] = {
        'prompt': params.prompt,
        'image_size': params.image_size,
        'num_inference_steps': params.num_inference_steps,
        'guidance_scale': params.guidance_scale,
        'sync_mode': params.sync_mode,
        'num_images': params.num_images,
        'enable_safety_checker': params.enable_safety_checker,
        'output_format': params.output_format.value,
        'negative_prompt': params.negative_prompt,
        'acceleration': params.acceleration.value,
    }

    # Add seed if provided
    if params.seed is not None:
        request_body['seed'] = params.seed

    logger.debug(f'Built fal.ai request with image_size: {params.image_size}')
    return request_body


class FalBackend(InferenceBackend):
    """Qwen Image served by the fal.ai queue API."""

    name = 'fal'
    display_name = 'fal.ai'
    model_id = FAL_QWEN_IMAGE_MODEL_ID
    credential_env_var = FAL_KEY_ENV_VAR
    params_model = FalQwenImageParams
    enforces_timeout = True

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = FAL_QUEUE_BASE_URL,
        poll_interval: float = QUEUE_POLL_INTERVAL,
    ):
        """Initialize the fal.ai backend.

        Args:
            api_key: FAL_KEY credential.
            base_url: Queue API base URL.
            poll_interval: Seconds between status polls.
        """
        super().__init__(api_key)
        self.base_url = base_url.rstrip('/')
        self.poll_interval = poll_interval

    def _headers(self) -> Dict[str, str]:
        return {
            'Authorization': f'Key {self.api_key}',
            'Content-Type': 'application/json',
        }

    def build_payload(self, params: FalQwenImageParams) -> Dict[str, Any]:
        """Build the fal.ai request body."""
        return build_fal_request(params)

    async def invoke(self, payload: Dict[str, Any], client: httpx.AsyncClient) -> Dict[str, Any]:
        """Submit the job to the queue, wait for completion and fetch the result.

        Args:
            payload: fal.ai request body.
            client: HTTP client to use.

        Returns:
            Dictionary with the 'request_id' and the model output under 'data'.

        Raises:
            PlatformError: On HTTP errors, transport errors or a failed job.
        """
        try:
            return await self._run_queued(payload, client)
        except PlatformError:
            raise
        except httpx.HTTPError as e:
            raise wrap_transport_error(e, self.display_name) from e

    async def _run_queued(
        self, payload: Dict[str, Any], client: httpx.AsyncClient
    ) -> Dict[str, Any]:
        submit_url = f'{self.base_url}/{self.model_id}'
        logger.info(f'Sending request to fal.ai model: {self.model_id}')
        submit_resp = await client.post(submit_url, headers=self._headers(), json=payload)
        raise_for_platform_status(submit_resp, self.display_name)

        submit_data = read_platform_json(submit_resp, self.display_name)
        request_id = submit_data.get('request_id')
        if not request_id:
            raise PlatformError(f'fal.ai queue response missing request_id: {submit_data}')

        requests_url = f'{self.base_url}/{self.model_id}/requests/{request_id}'
        status_url = submit_data.get('status_url') or f'{requests_url}/status'
        response_url = submit_data.get('response_url') or requests_url
        logger.debug(f'fal.ai request queued: {request_id}')

        logs_seen = 0
        while True:
            status_resp = await client.get(
                status_url, headers=self._headers(), params={'logs': '1'}
            )
            raise_for_platform_status(status_resp, self.display_name)
            status_data = read_platform_json(status_resp, self.display_name)
            status = status_data.get('status')

            logs = status_data.get('logs') or []
            for entry in logs[logs_seen:]:
                message = entry.get('message') if isinstance(entry, dict) else entry
                logger.debug(f'Generation progress: {message}')
            logs_seen = max(logs_seen, len(logs))

            if status == 'COMPLETED':
                break
            if status not in ('IN_QUEUE', 'IN_PROGRESS'):
                detail = status_data.get('error') or status_data
                raise PlatformError(
                    f'fal.ai job {request_id} failed: {detail}',
                    kind=ErrorKind.UNKNOWN,
                )
            await asyncio.sleep(self.poll_interval)

        result_resp = await client.get(response_url, headers=self._headers())
        raise_for_platform_status(result_resp, self.display_name)
        result_data = read_platform_json(result_resp, self.display_name)
        return {'request_id': request_id, 'data': result_data}

    def parse_result(
        self, raw: Dict[str, Any], params: FalQwenImageParams
    ) -> GenerationResult:
        """Normalize the fal.ai output (images, seed, prompt, NSFW flags)."""
        data = raw.get('data') or {}
        images: List[GeneratedImage] = []
        for image in data.get('images') or []:
            if isinstance(image, dict):
                images.append(
                    GeneratedImage(
                        url=image.get('url'),
                        width=image.get('width'),
                        height=image.get('height'),
                    )
                )
            else:
                images.append(GeneratedImage(url=image))

        return GenerationResult(
            images=images,
            seed=data.get('seed', params.seed),
            request_id=raw.get('request_id'),
            prompt=data.get('prompt') or params.prompt,
            has_nsfw_concepts=[bool(flag) for flag in data.get('has_nsfw_concepts') or []],
        )

    def file_extension(self, params: FalQwenImageParams) -> str:
        """File extension matching the requested output format."""
        return _EXTENSIONS.get(params.output_format, 'png')

    def describe_params(self, params: FalQwenImageParams) -> List[Tuple[str, str]]:
        """Parameters reported back to the caller, in display order."""
        return [
            ('Image Size', params.image_size),
            ('Inference Steps', str(params.num_inference_steps)),
            ('Guidance Scale', f'{params.guidance_scale:g}'),
            ('Images Requested', str(params.num_images)),
            ('Output Format', params.output_format.value),
            ('Acceleration', params.acceleration.value),
            ('Safety Checker', 'Enabled' if params.enable_safety_checker else 'Disabled'),
        ]
