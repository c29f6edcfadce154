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
"""Text rendering of tool results and errors."""

from qwen_image_mcp_server.consts import ISSUES_URL
from qwen_image_mcp_server.models.common import (
    DownloadedImage,
    DownloadStatus,
    ErrorKind,
    GenerationResult,
    QwenImageParams,
)
from qwen_image_mcp_server.services.platform_common import InferenceBackend
from typing import List, Optional, Sequence


def hint_for(kind: ErrorKind, backend: InferenceBackend) -> Optional[str]:
    """Remediation hint for a classified platform failure."""
    hints = {
        ErrorKind.TIMEOUT: 'Try a simpler prompt or increase the timeout setting.',
        ErrorKind.AUTH_FAILURE: (
            f'Check your {backend.credential_env_var} is valid and has sufficient credits.'
        ),
        ErrorKind.RATE_LIMITED: (
            "You've hit the rate limit. Please wait a moment before trying again."
        ),
        ErrorKind.INVALID_INPUT: 'Check your input parameters are within valid ranges.',
    }
    return hints.get(kind)


def format_platform_failure(message: str, kind: ErrorKind, backend: InferenceBackend) -> str:
    """Consolidated message for a failed platform call, with a hint when one applies."""
    text = f'Failed to generate image(s): {message}'
    hint = hint_for(kind, backend)
    if hint:
        text += f'\n💡 **Tip:** {hint}'
    return text


def _image_line(image: DownloadedImage) -> str:
    label = f'Image {image.index + 1}'
    if image.width and image.height:
        label += f' ({image.width}x{image.height})'
    if image.status is DownloadStatus.DOWNLOADED:
        return f'• {label}: {image.local_path} ({image.url})'
    if image.status is DownloadStatus.SKIPPED:
        return f'• {label}: Invalid URL - {image.url}'
    return f'• {label}: Download failed - {image.url}'


def format_success(
    params: QwenImageParams,
    result: GenerationResult,
    downloads: Sequence[DownloadedImage],
    backend: InferenceBackend,
) -> str:
    """Render the summary of a successful generation.

    Args:
        params: Parameters actually used.
        result: Normalized platform response.
        downloads: Outcome of storing each image.
        backend: The backend that served the request.

    Returns:
        The response text.
    """
    total = len(result.images)
    downloaded = sum(1 for d in downloads if d.status is DownloadStatus.DOWNLOADED)

    details: List[str] = [f'• Prompt: "{result.prompt or params.prompt}"']
    if params.negative_prompt:
        details.append(f'• Negative Prompt: "{params.negative_prompt}"')
    details.extend(f'• {label}: {value}' for label, value in backend.describe_params(params))
    details.append(f"• Seed Used: {result.seed if result.seed is not None else 'Random'}")
    details.append(f'• Generation Time: {result.generation_time_ms}ms')
    if result.request_id:
        details.append(f'• Request ID: {result.request_id}')

    image_lines = '\n'.join(_image_line(d) for d in downloads)
    if downloaded > 0:
        storage = "💾 Images have been downloaded to the local 'images' directory."
    else:
        storage = '💾 Images are available at the URLs above.'

    text = (
        f'✅ Successfully generated {total} image(s) using Qwen Image:\n'
        f'\n'
        f'📝 **Generation Details:**\n'
        + '\n'.join(details)
        + f'\n\n🖼️ **Generated Images ({total} total, {downloaded} downloaded):**\n'
        + image_lines
        + f'\n\n{storage}'
    )
    if result.has_nsfw_content:
        text += '\n⚠️ **Content Warning**: Some generated images may contain NSFW content.'
    return text


def format_error(message: str, backend: InferenceBackend) -> str:
    """Render the user-facing error block with generic troubleshooting steps."""
    return (
        f'❌ **Error generating image(s):**\n'
        f'\n'
        f'{message}\n'
        f'\n'
        f'🔧 **Troubleshooting:**\n'
        f'• Verify your {backend.credential_env_var} is set and valid\n'
        f'• Check your internet connection\n'
        f'• Ensure your {backend.display_name} account has sufficient credits\n'
        f'• Verify input parameters are within valid ranges\n'
        f'• Try a simpler prompt if the error persists\n'
        f'\n'
        f'📞 **Need help?** Visit: {ISSUES_URL}'
    )


def format_missing_credential(backend: InferenceBackend) -> str:
    """Error returned for every call while the server runs without a credential."""
    return (
        f'Error: {backend.credential_env_var} environment variable is not set. '
        f'Please configure your {backend.display_name} API key.'
    )
