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
"""Qwen Image MCP Server implementation."""

import signal
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from loguru import logger
from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import Field
from qwen_image_mcp_server.config import (
    BackendName,
    ConfigurationError,
    ServerConfig,
    configure_logging,
    log_startup_status,
)
from qwen_image_mcp_server.consts import (
    FAL_DEFAULT_ACCELERATION,
    FAL_DEFAULT_GUIDANCE_SCALE,
    FAL_DEFAULT_IMAGE_SIZE,
    FAL_DEFAULT_INFERENCE_STEPS,
    FAL_DEFAULT_NUM_IMAGES,
    FAL_DEFAULT_OUTPUT_FORMAT,
    FAL_IMAGE_SIZES,
    FAL_MAX_GUIDANCE_SCALE,
    FAL_MAX_INFERENCE_STEPS,
    FAL_MAX_NUM_IMAGES,
    FAL_MIN_GUIDANCE_SCALE,
    FAL_MIN_INFERENCE_STEPS,
    FAL_MIN_NUM_IMAGES,
    PROMPT_INSTRUCTIONS,
    REPLICATE_DEFAULT_GUIDANCE_SCALE,
    REPLICATE_DEFAULT_IMAGE_SIZE,
    REPLICATE_DEFAULT_INFERENCE_STEPS,
    REPLICATE_IMAGE_SIZES,
    REPLICATE_MAX_GUIDANCE_SCALE,
    REPLICATE_MAX_INFERENCE_STEPS,
    REPLICATE_MIN_GUIDANCE_SCALE,
    REPLICATE_MIN_INFERENCE_STEPS,
    SERVER_NAME,
    TOOL_NAME,
)
from qwen_image_mcp_server.models.common import Acceleration, OutputFormat
from qwen_image_mcp_server.services import get_backend
from qwen_image_mcp_server.services.generation import generate_image
from qwen_image_mcp_server.services.platform_common import InferenceBackend
from typing import Annotated, Any, AsyncIterator, Dict, Optional


@dataclass(frozen=True)
class AppContext:
    """State shared with every tool call for the lifetime of the server."""

    config: ServerConfig
    backend: InferenceBackend


PROMPT_FIELD = Field(
    description='The text prompt used to generate the image. Be descriptive for best results.'
)
SEED_FIELD = Field(
    description='Random seed for reproducible results. Same seed with same prompt will produce the same image.'
)
NEGATIVE_PROMPT_FIELD = Field(
    description='Negative prompt to specify what should not be in the image.'
)
STEPS_DESCRIPTION = (
    'The number of inference steps to perform. More steps generally produce higher quality '
    'images but take longer.'
)
GUIDANCE_DESCRIPTION = (
    'CFG scale - how closely the model should follow the prompt. Higher values stick closer '
    'to prompt.'
)
WORKSPACE_DIR_FIELD = Field(
    description="""The current workspace directory. Images are saved to its 'images' subdirectory.
    Defaults to the server's working directory."""
)


async def _run_generation(
    ctx: Context, arguments: Dict[str, Any], workspace_dir: Optional[str]
) -> str:
    app: AppContext = ctx.request_context.lifespan_context
    logger.debug(f"MCP tool {TOOL_NAME} called via {app.backend.display_name}")

    response = await generate_image(
        arguments=arguments,
        backend=app.backend,
        config=app.config,
        workspace_dir=workspace_dir,
    )
    if response.is_error:
        await ctx.error(response.text)
        raise ToolError(response.text)
    return response.text


async def mcp_generate_image_fal(
    ctx: Context,
    prompt: Annotated[str, PROMPT_FIELD],
    image_size: Annotated[
        str,
        Field(
            description='The size of the generated image.',
            json_schema_extra={'enum': list(FAL_IMAGE_SIZES)},
        ),
    ] = FAL_DEFAULT_IMAGE_SIZE,
    num_inference_steps: Annotated[
        int,
        Field(
            description=STEPS_DESCRIPTION,
            json_schema_extra={
                'minimum': FAL_MIN_INFERENCE_STEPS,
                'maximum': FAL_MAX_INFERENCE_STEPS,
            },
        ),
    ] = FAL_DEFAULT_INFERENCE_STEPS,
    seed: Annotated[Optional[int], SEED_FIELD] = None,
    guidance_scale: Annotated[
        float,
        Field(
            description=GUIDANCE_DESCRIPTION,
            json_schema_extra={
                'minimum': FAL_MIN_GUIDANCE_SCALE,
                'maximum': FAL_MAX_GUIDANCE_SCALE,
            },
        ),
    ] = FAL_DEFAULT_GUIDANCE_SCALE,
    sync_mode: Annotated[
        bool,
        Field(
            description='If true, waits for image generation to complete before returning. '
            'Increases latency but provides direct response.'
        ),
    ] = False,
    num_images: Annotated[
        int,
        Field(
            description='Number of images to generate.',
            json_schema_extra={'minimum': FAL_MIN_NUM_IMAGES, 'maximum': FAL_MAX_NUM_IMAGES},
        ),
    ] = FAL_DEFAULT_NUM_IMAGES,
    enable_safety_checker: Annotated[
        bool, Field(description='Enable safety checker to filter inappropriate content.')
    ] = True,
    output_format: Annotated[
        str,
        Field(
            description='Output image format.',
            json_schema_extra={'enum': [fmt.value for fmt in OutputFormat]},
        ),
    ] = FAL_DEFAULT_OUTPUT_FORMAT,
    negative_prompt: Annotated[str, NEGATIVE_PROMPT_FIELD] = '',
    acceleration: Annotated[
        str,
        Field(
            description="Acceleration level for faster generation. 'regular' balances speed "
            "and quality, 'high' recommended for images without text.",
            json_schema_extra={'enum': [level.value for level in Acceleration]},
        ),
    ] = FAL_DEFAULT_ACCELERATION,
    workspace_dir: Annotated[Optional[str], WORKSPACE_DIR_FIELD] = None,
) -> str:
    """Generate images using Qwen Image model via fal.ai.

    Supports complex text rendering, precise image editing, and high-quality image
    generation from text prompts. Generated images are downloaded to the local
    'images' directory and summarized in the response.

    Returns:
        str: Generation details and the local path and URL of every image.
    """
    return await _run_generation(
        ctx,
        {
            'prompt': prompt,
            'image_size': image_size,
            'num_inference_steps': num_inference_steps,
            'seed': seed,
            'guidance_scale': guidance_scale,
            'sync_mode': sync_mode,
            'num_images': num_images,
            'enable_safety_checker': enable_safety_checker,
            'output_format': output_format,
            'negative_prompt': negative_prompt,
            'acceleration': acceleration,
        },
        workspace_dir,
    )


async def mcp_generate_image_replicate(
    ctx: Context,
    prompt: Annotated[str, PROMPT_FIELD],
    image_size: Annotated[
        str,
        Field(
            description='The size of the generated image.',
            json_schema_extra={'enum': list(REPLICATE_IMAGE_SIZES)},
        ),
    ] = REPLICATE_DEFAULT_IMAGE_SIZE,
    num_inference_steps: Annotated[
        int,
        Field(
            description=STEPS_DESCRIPTION,
            json_schema_extra={
                'minimum': REPLICATE_MIN_INFERENCE_STEPS,
                'maximum': REPLICATE_MAX_INFERENCE_STEPS,
            },
        ),
    ] = REPLICATE_DEFAULT_INFERENCE_STEPS,
    seed: Annotated[Optional[int], SEED_FIELD] = None,
    guidance_scale: Annotated[
        float,
        Field(
            description=GUIDANCE_DESCRIPTION,
            json_schema_extra={
                'minimum': REPLICATE_MIN_GUIDANCE_SCALE,
                'maximum': REPLICATE_MAX_GUIDANCE_SCALE,
            },
        ),
    ] = REPLICATE_DEFAULT_GUIDANCE_SCALE,
    negative_prompt: Annotated[str, NEGATIVE_PROMPT_FIELD] = '',
    workspace_dir: Annotated[Optional[str], WORKSPACE_DIR_FIELD] = None,
) -> str:
    """Generate images using Qwen Image model via Replicate.

    Supports complex text rendering, precise image editing, and high-quality image
    generation from text prompts. Generated images are downloaded to the local
    'images' directory and summarized in the response.

    Returns:
        str: Generation details and the local path and URL of every image.
    """
    return await _run_generation(
        ctx,
        {
            'prompt': prompt,
            'image_size': image_size,
            'num_inference_steps': num_inference_steps,
            'seed': seed,
            'guidance_scale': guidance_scale,
            'negative_prompt': negative_prompt,
        },
        workspace_dir,
    )


TOOLS = {
    BackendName.FAL: mcp_generate_image_fal,
    BackendName.REPLICATE: mcp_generate_image_replicate,
}


def create_server(
    config: ServerConfig, backend: Optional[InferenceBackend] = None
) -> FastMCP:
    """Create the MCP server exposing ``generate_image`` for the configured platform.

    Args:
        config: Server configuration.
        backend: Backend override; built from the configuration when omitted.

    Returns:
        The FastMCP server, ready to run.
    """
    if backend is None:
        backend = get_backend(config)

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
        yield AppContext(config=config, backend=backend)

    mcp = FastMCP(
        SERVER_NAME,
        instructions=f"""
# Qwen Image Generation

This MCP server generates images with the Qwen Image model hosted on {backend.display_name}.

## Available Tools

- **{TOOL_NAME}**: Generate one or more images from a text prompt. Images are downloaded
  to the local 'images' directory and their paths are returned.

{PROMPT_INSTRUCTIONS}
""",
        lifespan=lifespan,
    )
    mcp.add_tool(
        TOOLS[config.backend],
        name=TOOL_NAME,
        description=(
            f'Generate images using Qwen Image model via {backend.display_name}. '
            'Supports complex text rendering, precise image editing, and high-quality '
            'image generation from text prompts.'
        ),
    )
    return mcp


def _handle_sigterm(signum: int, frame: Any) -> None:
    logger.info('Received SIGTERM, shutting down gracefully...')
    sys.exit(0)


def main():
    """Run the MCP server over stdio."""
    try:
        config = ServerConfig.from_env()
    except ConfigurationError as e:
        logger.error(f'Server startup error: {str(e)}')
        sys.exit(1)

    configure_logging(config)
    log_startup_status(config)
    signal.signal(signal.SIGTERM, _handle_sigterm)

    try:
        mcp = create_server(config)
        logger.info(f'Qwen Image {config.backend.value} MCP server running on stdio')
        logger.debug('Server ready to accept requests')
        mcp.run()
    except KeyboardInterrupt:
        logger.info('Received SIGINT, shutting down gracefully...')
        sys.exit(0)
    except Exception:
        logger.exception('Server error')
        sys.exit(1)


if __name__ == '__main__':
    main()
