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
"""Backend implementation for Qwen Image on Replicate.

A prediction is created against the official ``qwen/qwen-image`` model with
``Prefer: wait`` so short generations come back in a single round trip; longer
ones are polled until the prediction reaches a terminal state.
"""

import asyncio
import httpx
from loguru import logger
from qwen_image_mcp_server.consts import (
    QUEUE_POLL_INTERVAL,
    REPLICATE_API_BASE_URL,
    REPLICATE_OUTPUT_EXTENSION,
    REPLICATE_QWEN_IMAGE_MODEL_ID,
    REPLICATE_TOKEN_ENV_VAR,
)
from qwen_image_mcp_server.models.common import GeneratedImage, GenerationResult
from qwen_image_mcp_server.models.replicate_models import ReplicateQwenImageParams
from qwen_image_mcp_server.services.platform_common import (
    InferenceBackend,
    PlatformError,
    classify_error_message,
    raise_for_platform_status,
    read_platform_json,
    wrap_transport_error,
)
from typing import Any, Dict, List, Optional, Tuple


_PENDING_STATUSES = ('starting', 'processing')


def build_replicate_request(params: ReplicateQwenImageParams) -> Dict[str, Any]:
    """Build the prediction input for qwen/qwen-image.

    Args:
        params: Validated Replicate parameters.

    Returns:
        Dictionary containing the model input.
    """
    model_input: Dict[str, Any] = {
        'prompt': params.prompt,
        'image_size': params.image_size,
        'num_inference_steps': params.num_inference_steps,
        'guidance_scale': params.guidance_scale,
        'negative_prompt': params.negative_prompt,
    }
    if params.seed is not None:
        model_input['seed'] = params.seed
    return model_input


class ReplicateBackend(InferenceBackend):
    """Qwen Image served by Replicate predictions."""

    name = 'replicate'
    display_name = 'Replicate'
    model_id = REPLICATE_QWEN_IMAGE_MODEL_ID
    credential_env_var = REPLICATE_TOKEN_ENV_VAR
    params_model = ReplicateQwenImageParams
    enforces_timeout = False

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = REPLICATE_API_BASE_URL,
        poll_interval: float = QUEUE_POLL_INTERVAL,
    ):
        """Initialize the Replicate backend.

        Args:
            api_key: REPLICATE_API_TOKEN credential.
            base_url: Replicate API base URL.
            poll_interval: Seconds between prediction polls.
        """
        super().__init__(api_key)
        self.base_url = base_url.rstrip('/')
        self.poll_interval = poll_interval

    def _headers(self) -> Dict[str, str]:
        return {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json',
        }

    def build_payload(self, params: ReplicateQwenImageParams) -> Dict[str, Any]:
        """Build the Replicate model input."""
        return build_replicate_request(params)

    async def invoke(self, payload: Dict[str, Any], client: httpx.AsyncClient) -> Dict[str, Any]:
        """Create a prediction and wait for it to finish.

        Args:
            payload: Model input.
            client: HTTP client to use.

        Returns:
            The final prediction object.

        Raises:
            PlatformError: On HTTP errors, transport errors, or a failed or canceled prediction.
        """
        try:
            return await self._run_prediction(payload, client)
        except PlatformError:
            raise
        except httpx.HTTPError as e:
            raise wrap_transport_error(e, self.display_name) from e

    async def _run_prediction(
        self, payload: Dict[str, Any], client: httpx.AsyncClient
    ) -> Dict[str, Any]:
        create_url = f'{self.base_url}/models/{self.model_id}/predictions'
        logger.info(f'Sending request to Replicate model: {self.model_id}')
        response = await client.post(
            create_url,
            headers={**self._headers(), 'Prefer': 'wait'},
            json={'input': payload},
        )
        raise_for_platform_status(response, self.display_name)
        prediction = read_platform_json(response, self.display_name)

        while prediction.get('status') in _PENDING_STATUSES:
            get_url = (prediction.get('urls') or {}).get('get') or (
                f"{self.base_url}/predictions/{prediction.get('id')}"
            )
            await asyncio.sleep(self.poll_interval)
            response = await client.get(get_url, headers=self._headers())
            raise_for_platform_status(response, self.display_name)
            prediction = read_platform_json(response, self.display_name)
            logger.debug(f"Prediction {prediction.get('id')} status: {prediction.get('status')}")

        status = prediction.get('status')
        if status == 'failed':
            detail = str(prediction.get('error') or 'prediction failed')
            raise PlatformError(
                f'Replicate prediction failed: {detail}',
                kind=classify_error_message(detail),
            )
        if status == 'canceled':
            raise PlatformError('Replicate prediction was canceled')
        return prediction

    def parse_result(
        self, raw: Dict[str, Any], params: ReplicateQwenImageParams
    ) -> GenerationResult:
        """Normalize a prediction whose output is a URL or a list of URLs."""
        output = raw.get('output')
        if output is None:
            output = []
        elif not isinstance(output, list):
            output = [output]

        return GenerationResult(
            images=[GeneratedImage(url=url) for url in output],
            seed=params.seed,
            request_id=raw.get('id'),
            prompt=params.prompt,
        )

    def file_extension(self, params: ReplicateQwenImageParams) -> str:
        """Replicate serves qwen/qwen-image output as WebP."""
        return REPLICATE_OUTPUT_EXTENSION

    def describe_params(self, params: ReplicateQwenImageParams) -> List[Tuple[str, str]]:
        """Parameters reported back to the caller, in display order."""
        return [
            ('Image Size', params.image_size),
            ('Inference Steps', str(params.num_inference_steps)),
            ('Guidance Scale', f'{params.guidance_scale:g}'),
        ]
