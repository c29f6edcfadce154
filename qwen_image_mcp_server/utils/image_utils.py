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
"""Image download, naming and inspection utilities."""

import base64
import httpx
import os
import re
from datetime import datetime, timezone
from loguru import logger
from PIL import Image
from qwen_image_mcp_server.consts import (
    DATA_URI_PREFIX,
    DOWNLOAD_CHUNK_SIZE,
    FILENAME_PREFIX,
    MAX_PROMPT_SLUG_LENGTH,
)
from qwen_image_mcp_server.models.common import DownloadedImage, DownloadStatus, GeneratedImage
from typing import Any, List, Optional, Sequence, Tuple


def slugify_prompt(prompt: str) -> str:
    """Turn a prompt into a filesystem-safe slug.

    Lower-cases the prompt, drops everything except ASCII letters, digits and
    whitespace, joins words with underscores and truncates to 50 characters.

    Args:
        prompt: The generation prompt.

    Returns:
        The slug (may be empty).
    """
    slug = re.sub(r'[^a-z0-9\s]', '', prompt.lower())
    slug = re.sub(r'\s+', '_', slug)
    return slug[:MAX_PROMPT_SLUG_LENGTH]


def batch_timestamp(now: Optional[datetime] = None) -> str:
    """Timestamp shared by every image of one batch, e.g. ``2026-10-18T01-02-03-456Z``."""
    if now is None:
        now = datetime.now(timezone.utc)
    else:
        now = now.astimezone(timezone.utc)
    return now.strftime('%Y-%m-%dT%H-%M-%S-') + f'{now.microsecond // 1000:03d}Z'


def generate_image_filename(prompt: str, index: int, timestamp: str, extension: str) -> str:
    """Generate the filename for one image of a batch.

    Args:
        prompt: The generation prompt.
        index: Zero-based position of the image in the batch.
        timestamp: Batch timestamp from ``batch_timestamp``.
        extension: File extension without the dot.

    Returns:
        ``qwen_image_<slug>_<index>_<timestamp>.<extension>``
    """
    return f'{FILENAME_PREFIX}_{slugify_prompt(prompt)}_{index}_{timestamp}.{extension}'


def is_valid_image_url(url: Any) -> bool:
    """Check that a platform-returned URL is an absolute http(s) URL."""
    if not isinstance(url, str) or not url.startswith('http'):
        return False
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, ValueError, TypeError):
        return False
    return parsed.scheme in ('http', 'https') and bool(parsed.host)


def is_data_uri(url: Any) -> bool:
    """Check whether the platform returned the image inline as a data URI."""
    return isinstance(url, str) and url.startswith(DATA_URI_PREFIX)


def describe_image_url(url: Any) -> str:
    """Printable form of an image URL.

    Data URIs carry the whole image, so only their media type is kept.
    """
    if url is None:
        return ''
    if is_data_uri(url):
        media_type = url[len(DATA_URI_PREFIX):].split(',', 1)[0].split(';', 1)[0]
        return f'inline {media_type or "image"} data'
    return str(url)


def decode_data_uri(uri: str) -> bytes:
    """Decode a base64 data URI to image bytes.

    Args:
        uri: ``data:<media type>;base64,<payload>`` string.

    Returns:
        Raw image bytes.

    Raises:
        ValueError: If the URI is not base64-encoded or the payload is invalid.
    """
    header, separator, payload = uri.partition(',')
    if not separator or not header.endswith(';base64'):
        raise ValueError('Failed to decode base64 image: data URI is not base64-encoded')
    try:
        return base64.b64decode(payload, validate=True)
    except ValueError as e:
        raise ValueError(f'Failed to decode base64 image: {str(e)}')


def save_data_uri(uri: str, file_path: str) -> str:
    """Write an inline data URI image to disk.

    Raises:
        ValueError: If the payload cannot be decoded.
        OSError: If the file cannot be written.
    """
    image_data = decode_data_uri(uri)
    with open(file_path, 'wb') as file:
        file.write(image_data)
    return file_path


async def download_image(url: str, file_path: str, client: httpx.AsyncClient) -> str:
    """Stream an image to disk.

    Args:
        url: Source URL.
        file_path: Destination path.
        client: HTTP client to use.

    Returns:
        The destination path.

    Raises:
        httpx.HTTPError: On transport failures or a non-200 response.
        OSError: If the file cannot be written.
    """
    try:
        async with client.stream('GET', url) as response:
            if response.status_code != 200:
                raise httpx.HTTPStatusError(
                    f'Failed to download image: {response.status_code}',
                    request=response.request,
                    response=response,
                )
            with open(file_path, 'wb') as file:
                async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                    file.write(chunk)
    except BaseException:
        # Never leave a truncated file behind
        if os.path.exists(file_path):
            os.remove(file_path)
        raise
    return file_path


def probe_image_dimensions(file_path: str) -> Optional[Tuple[int, int]]:
    """Read width and height from a stored image, or None if Pillow cannot parse it."""
    try:
        with Image.open(file_path) as image:
            return image.size
    except (OSError, Image.DecompressionBombError) as e:
        logger.warning(f'Could not read image dimensions from {file_path}: {str(e)}')
        return None


async def materialize_images(
    images: Sequence[GeneratedImage],
    prompt: str,
    output_dir: str,
    extension: str,
    client: httpx.AsyncClient,
    now: Optional[datetime] = None,
) -> List[DownloadedImage]:
    """Store every generated image in ``output_dir``, one after another.

    Remote images are downloaded and inline data URIs are decoded. Each image
    is handled independently: a malformed URL is skipped without a download
    attempt, and a failed download or an unusable output directory leaves an
    entry with an empty local path. Neither stops the rest of the batch.
    Every input image yields exactly one entry, in order.

    Args:
        images: Images returned by the platform.
        prompt: Prompt used for the filename slug.
        output_dir: Target directory, created if absent.
        extension: File extension without the dot.
        client: HTTP client to use.
        now: Batch time; defaults to the current time.

    Returns:
        One DownloadedImage per input image.
    """
    logger.debug(f'Downloading {len(images)} image(s) locally...')
    dir_error: Optional[str] = None
    try:
        os.makedirs(output_dir, exist_ok=True)
    except OSError as e:
        dir_error = f'Failed to create output directory {output_dir}: {str(e)}'
        logger.error(dir_error)

    timestamp = batch_timestamp(now)
    results: List[DownloadedImage] = []
    for index, image in enumerate(images):
        url = image.url
        shown_url = describe_image_url(url)
        inline = is_data_uri(url)
        if not inline and not is_valid_image_url(url):
            logger.warning(f'Invalid image URL at index {index}: {shown_url}')
            results.append(
                DownloadedImage(
                    index=index,
                    url=shown_url,
                    status=DownloadStatus.SKIPPED,
                    width=image.width,
                    height=image.height,
                    error='invalid URL',
                )
            )
            continue

        filename = generate_image_filename(prompt, index, timestamp, extension)
        file_path = os.path.join(output_dir, filename)
        try:
            if dir_error:
                raise OSError(dir_error)
            if inline:
                local_path = save_data_uri(url, file_path)
            else:
                local_path = await download_image(url, file_path, client)
        except (httpx.HTTPError, OSError, ValueError) as e:
            logger.warning(f'Failed to store image {index + 1}: {str(e)}')
            results.append(
                DownloadedImage(
                    index=index,
                    url=shown_url,
                    status=DownloadStatus.FAILED,
                    width=image.width,
                    height=image.height,
                    error=str(e),
                )
            )
            continue

        width, height = image.width, image.height
        if width is None or height is None:
            dimensions = probe_image_dimensions(local_path)
            if dimensions:
                width, height = dimensions

        results.append(
            DownloadedImage(
                index=index,
                url=shown_url,
                local_path=os.path.abspath(local_path),
                status=DownloadStatus.DOWNLOADED,
                width=width,
                height=height,
            )
        )
        logger.info(f'Image {index + 1} downloaded successfully: {filename}')

    return results
