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
"""Test fixtures for the qwen-image-mcp-server tests."""

import httpx
import pytest
from io import BytesIO
from PIL import Image
from qwen_image_mcp_server.config import BackendName, ServerConfig
from qwen_image_mcp_server.services.fal_service import FalBackend
from qwen_image_mcp_server.services.replicate_service import ReplicateBackend
from unittest.mock import AsyncMock, MagicMock


FAL_QUEUE = 'https://queue.fal.run/fal-ai/qwen-image'
REPLICATE_API = 'https://api.replicate.com/v1'


def make_png_bytes(width=64, height=48, color='red'):
    """Create a small valid PNG image."""
    img = Image.new('RGB', (width, height), color=color)
    buffer = BytesIO()
    img.save(buffer, format='PNG')
    return buffer.getvalue()


class RecordingTransport(httpx.MockTransport):
    """MockTransport that remembers every request it served."""

    def __init__(self, handler):
        self.requests = []

        def recording_handler(request):
            self.requests.append(request)
            return handler(request)

        super().__init__(recording_handler)


@pytest.fixture
def sample_text_prompt():
    """Return a sample text prompt."""
    return 'a red fox in snow'


@pytest.fixture
def png_bytes():
    """Return the bytes of a 64x48 PNG image."""
    return make_png_bytes()


@pytest.fixture
def temp_workspace_dir(tmp_path):
    """Return a temporary workspace directory."""
    return str(tmp_path)


@pytest.fixture
def fal_config(tmp_path):
    """Configuration for the fal.ai backend with a credential."""
    return ServerConfig(
        backend=BackendName.FAL,
        api_key='fal-test-key',
        images_dir=str(tmp_path / 'images'),
    )


@pytest.fixture
def replicate_config(tmp_path):
    """Configuration for the Replicate backend with a credential."""
    return ServerConfig(
        backend=BackendName.REPLICATE,
        api_key='r8-test-token',
        images_dir=str(tmp_path / 'images'),
    )


@pytest.fixture
def fal_backend():
    """fal.ai backend that polls without sleeping."""
    return FalBackend(api_key='fal-test-key', poll_interval=0)


@pytest.fixture
def replicate_backend():
    """Replicate backend that polls without sleeping."""
    return ReplicateBackend(api_key='r8-test-token', poll_interval=0)


@pytest.fixture
def mock_context():
    """Create a mock MCP context."""
    context = MagicMock()
    context.error = AsyncMock()
    return context


@pytest.fixture
def recording_transport():
    """Factory wrapping a request handler into a RecordingTransport."""
    return RecordingTransport


@pytest.fixture
def fal_handler(png_bytes):
    """Factory for a handler emulating the fal.ai queue and an image CDN.

    Args (of the returned factory):
        result: Model output returned once the job completes.
        failing_urls: Image URLs that answer with HTTP 500.
        statuses: Sequence of statuses reported before COMPLETED.
    """
    def factory(result, failing_urls=(), statuses=()):
        pending = list(statuses)

        def handler(request):
            url = str(request.url)
            path = request.url.path
            if request.method == 'POST' and url == FAL_QUEUE:
                return httpx.Response(
                    200,
                    json={
                        'request_id': 'req-123',
                        'status_url': f'{FAL_QUEUE}/requests/req-123/status',
                        'response_url': f'{FAL_QUEUE}/requests/req-123',
                    },
                )
            if path == '/fal-ai/qwen-image/requests/req-123/status':
                if pending:
                    return httpx.Response(200, json=pending.pop(0))
                return httpx.Response(200, json={'status': 'COMPLETED', 'logs': []})
            if path == '/fal-ai/qwen-image/requests/req-123':
                return httpx.Response(200, json=result)
            if url in failing_urls:
                return httpx.Response(500)
            if request.url.host == 'cdn.example.com':
                return httpx.Response(200, content=png_bytes)
            return httpx.Response(404)

        return handler

    return factory
