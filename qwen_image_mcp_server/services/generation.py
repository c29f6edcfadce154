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
"""Generation pipeline shared by every inference backend.

Workflow per tool call:
1. Check that a platform credential is configured
2. Validate the arguments against the backend's parameter set
3. Build the payload and invoke the platform (raced against the request
   timeout for backends that enforce one)
4. Download the returned images one after another
5. Render the text response
"""

import asyncio
import httpx
import time
from loguru import logger
from qwen_image_mcp_server.config import ServerConfig
from qwen_image_mcp_server.models.common import (
    DownloadStatus,
    ErrorKind,
    GenerationResult,
    InvalidParameterError,
    QwenImageParams,
    ToolResponse,
)
from qwen_image_mcp_server.services.formatting import (
    format_error,
    format_missing_credential,
    format_platform_failure,
    format_success,
)
from qwen_image_mcp_server.services.platform_common import (
    HTTP_TIMEOUT,
    InferenceBackend,
    PlatformError,
    classify_error_message,
)
from qwen_image_mcp_server.utils.image_utils import materialize_images
from typing import Any, Mapping, Optional


async def dispatch_generation(
    params: QwenImageParams,
    backend: InferenceBackend,
    config: ServerConfig,
    client: httpx.AsyncClient,
) -> GenerationResult:
    """Run one generation on the hosted platform.

    The call is made once; failures are not retried. Backends that enforce a
    timeout have their call cancelled when ``config.request_timeout_ms``
    expires, and no partial result is kept.

    Args:
        params: Validated parameters.
        backend: Platform adapter.
        config: Server configuration.
        client: HTTP client to use.

    Returns:
        The normalized result with the elapsed time filled in.

    Raises:
        PlatformError: Classified failure of the platform call.
    """
    payload = backend.build_payload(params)
    logger.info(f'Generating image(s) with prompt: "{params.prompt}"')
    logger.debug(f'Generation parameters: {payload}')

    start = time.monotonic()
    try:
        if backend.enforces_timeout:
            raw = await asyncio.wait_for(
                backend.invoke(payload, client), timeout=config.request_timeout_seconds
            )
        else:
            raw = await backend.invoke(payload, client)
    except asyncio.TimeoutError as e:
        raise PlatformError('Request timeout', kind=ErrorKind.TIMEOUT) from e
    except PlatformError:
        raise
    except Exception as e:
        message = str(e) or type(e).__name__
        raise PlatformError(message, kind=classify_error_message(message)) from e

    generation_time_ms = int((time.monotonic() - start) * 1000)
    result = backend.parse_result(raw, params).model_copy(
        update={'generation_time_ms': generation_time_ms}
    )
    logger.info(f'Image(s) generated successfully in {generation_time_ms}ms')

    if not result.images:
        raise PlatformError(
            f'No images were generated - empty response from {backend.display_name}'
        )
    return result


async def _generate(
    params: QwenImageParams,
    backend: InferenceBackend,
    config: ServerConfig,
    client: httpx.AsyncClient,
    workspace_dir: Optional[str],
) -> ToolResponse:
    result = await dispatch_generation(params, backend, config, client)
    downloads = await materialize_images(
        images=result.images,
        prompt=params.prompt,
        output_dir=config.resolve_images_dir(workspace_dir),
        extension=backend.file_extension(params),
        client=client,
    )
    return ToolResponse(
        text=format_success(params, result, downloads, backend),
        paths=[d.local_path for d in downloads if d.status is DownloadStatus.DOWNLOADED],
    )


async def generate_image(
    arguments: Optional[Mapping[str, Any]],
    backend: InferenceBackend,
    config: ServerConfig,
    client: Optional[httpx.AsyncClient] = None,
    workspace_dir: Optional[str] = None,
) -> ToolResponse:
    """Handle one ``generate_image`` tool call end to end.

    Never raises: every failure, expected or not, is turned into an error
    response so a bad call cannot take the server down.

    Args:
        arguments: Raw tool arguments.
        backend: Platform adapter.
        config: Server configuration.
        client: HTTP client for platform calls and downloads. A client is
            created for the call when omitted.
        workspace_dir: Directory whose ``images`` subdirectory receives the files.

    Returns:
        ToolResponse with the summary or the error block.
    """
    if not config.has_credentials:
        logger.error(f'{backend.credential_env_var} is not set, refusing to call {backend.display_name}')
        return ToolResponse(text=format_missing_credential(backend), is_error=True)

    try:
        params = backend.validate(arguments)
        if client is not None:
            return await _generate(params, backend, config, client, workspace_dir)
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT, follow_redirects=True) as own_client:
            return await _generate(params, backend, config, own_client, workspace_dir)
    except InvalidParameterError as e:
        message = str(e)
    except PlatformError as e:
        logger.error(f'{backend.display_name} API error: {e.message}')
        message = format_platform_failure(e.message, e.kind, backend)
    except Exception as e:
        logger.exception('Unexpected error during image generation')
        message = str(e) or 'Unknown error occurred'

    logger.error(f'Image generation failed: {message}')
    return ToolResponse(text=format_error(message, backend), is_error=True)
