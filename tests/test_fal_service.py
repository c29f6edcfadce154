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
"""Tests for the fal.ai backend."""

import httpx
import json
import pytest
from qwen_image_mcp_server.models.common import ErrorKind, OutputFormat, validate_request
from qwen_image_mcp_server.models.fal_models import FalQwenImageParams
from qwen_image_mcp_server.services.fal_service import FalBackend, build_fal_request
from qwen_image_mcp_server.services.platform_common import PlatformError


FAL_RESULT = {
    'images': [
        {'url': 'https://cdn.example.com/0.png', 'width': 1024, 'height': 768},
        {'url': 'https://cdn.example.com/1.png', 'width': 1024, 'height': 768},
    ],
    'seed': 987,
    'prompt': 'a red fox in snow',
    'has_nsfw_concepts': [False, True],
}


class TestBuildFalRequest:
    """Tests for the build_fal_request function."""

    def test_defaults(self):
        """Test the payload built from defaults."""
        params = validate_request(FalQwenImageParams, {'prompt': 'a red fox in snow'})
        request = build_fal_request(params)
        assert request == {
            'prompt': 'a red fox in snow',
            'image_size': 'landscape_4_3',
            'num_inference_steps': 30,
            'guidance_scale': 2.5,
            'sync_mode': False,
            'num_images': 1,
            'enable_safety_checker': True,
            'output_format': 'png',
            'negative_prompt': '',
            'acceleration': 'none',
        }

    def test_with_seed(self):
        """Test that a seed, including zero, is forwarded."""
        params = validate_request(FalQwenImageParams, {'prompt': 'x', 'seed': 0})
        assert build_fal_request(params)['seed'] == 0


class TestFalBackendInvoke:
    """Tests for the FalBackend.invoke queue flow."""

    @pytest.mark.asyncio
    async def test_queue_flow(self, fal_backend, fal_handler, recording_transport):
        """Test submit, polling with progress logs and result retrieval."""
        transport = recording_transport(
            fal_handler(
                FAL_RESULT,
                statuses=[
                    {'status': 'IN_QUEUE', 'queue_position': 2},
                    {'status': 'IN_PROGRESS', 'logs': [{'message': 'step 1/30'}]},
                ],
            )
        )
        async with httpx.AsyncClient(transport=transport) as client:
            raw = await fal_backend.invoke({'prompt': 'a red fox in snow'}, client)

        assert raw == {'request_id': 'req-123', 'data': FAL_RESULT}
        submit = transport.requests[0]
        assert submit.method == 'POST'
        assert submit.headers['Authorization'] == 'Key fal-test-key'
        assert json.loads(submit.content) == {'prompt': 'a red fox in snow'}
        status_requests = [r for r in transport.requests if r.url.path.endswith('/status')]
        assert len(status_requests) == 3
        assert status_requests[0].url.params['logs'] == '1'

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        'status_code,kind',
        [
            (401, ErrorKind.AUTH_FAILURE),
            (403, ErrorKind.AUTH_FAILURE),
            (422, ErrorKind.INVALID_INPUT),
            (429, ErrorKind.RATE_LIMITED),
            (504, ErrorKind.TIMEOUT),
            (500, ErrorKind.UNKNOWN),
        ],
    )
    async def test_submit_errors_are_classified(self, fal_backend, status_code, kind):
        """Test that HTTP failures carry a structured error kind."""
        transport = httpx.MockTransport(
            lambda request: httpx.Response(status_code, json={'detail': 'nope'})
        )
        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(PlatformError) as exc_info:
                await fal_backend.invoke({'prompt': 'x'}, client)
        assert exc_info.value.kind == kind
        assert exc_info.value.status_code == status_code
        assert 'nope' in exc_info.value.message

    @pytest.mark.asyncio
    async def test_failed_job(self, fal_backend, fal_handler):
        """Test that a job ending in an unknown status raises."""
        handler = fal_handler(FAL_RESULT, statuses=[{'status': 'ERROR', 'error': 'model crashed'}])
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(PlatformError, match='model crashed'):
                await fal_backend.invoke({'prompt': 'x'}, client)

    @pytest.mark.asyncio
    async def test_missing_request_id(self, fal_backend):
        """Test that a submit response without a request id raises."""
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={}))
        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(PlatformError, match='missing request_id'):
                await fal_backend.invoke({'prompt': 'x'}, client)

    @pytest.mark.asyncio
    async def test_non_json_status_body(self, fal_backend, fal_handler):
        """Test that an unreadable status body is a platform error."""
        queue = fal_handler({'images': []})

        def handler(request):
            if request.url.path.endswith('/status'):
                return httpx.Response(200, text='<html>gateway</html>')
            return queue(request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(PlatformError) as exc_info:
                await fal_backend.invoke({'prompt': 'x'}, client)
        assert 'fal.ai returned an invalid JSON body' in exc_info.value.message
        assert exc_info.value.status_code == 200

    @pytest.mark.asyncio
    async def test_transport_timeout(self, fal_backend):
        """Test that an httpx timeout is classified as a timeout."""
        def handler(request):
            raise httpx.ReadTimeout('read timed out', request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(PlatformError) as exc_info:
                await fal_backend.invoke({'prompt': 'x'}, client)
        assert exc_info.value.kind == ErrorKind.TIMEOUT


class TestFalBackendResult:
    """Tests for result parsing and reporting."""

    def test_parse_result(self, fal_backend):
        """Test normalization of the fal.ai output."""
        params = validate_request(FalQwenImageParams, {'prompt': 'a red fox in snow'})
        result = fal_backend.parse_result({'request_id': 'req-123', 'data': FAL_RESULT}, params)
        assert [image.url for image in result.images] == [
            'https://cdn.example.com/0.png',
            'https://cdn.example.com/1.png',
        ]
        assert result.images[0].width == 1024
        assert result.seed == 987
        assert result.request_id == 'req-123'
        assert result.has_nsfw_concepts == [False, True]
        assert result.has_nsfw_content is True

    def test_parse_empty_result(self, fal_backend):
        """Test that a response without images parses to an empty list."""
        params = validate_request(FalQwenImageParams, {'prompt': 'x', 'seed': 5})
        result = fal_backend.parse_result({'request_id': 'r', 'data': {}}, params)
        assert result.images == []
        assert result.seed == 5

    @pytest.mark.parametrize('fmt,extension', [(OutputFormat.PNG, 'png'), (OutputFormat.JPEG, 'jpg')])
    def test_file_extension(self, fal_backend, fmt, extension):
        """Test that the extension follows the output format."""
        params = FalQwenImageParams(prompt='x', output_format=fmt)
        assert fal_backend.file_extension(params) == extension

    def test_describe_params(self, fal_backend):
        """Test the parameters reported to the caller."""
        params = validate_request(
            FalQwenImageParams, {'prompt': 'x', 'enable_safety_checker': False}
        )
        described = dict(fal_backend.describe_params(params))
        assert described['Image Size'] == 'landscape_4_3'
        assert described['Guidance Scale'] == '2.5'
        assert described['Acceleration'] == 'none'
        assert described['Safety Checker'] == 'Disabled'

    def test_backend_metadata(self):
        """Test the static backend description."""
        backend = FalBackend()
        assert backend.model_id == 'fal-ai/qwen-image'
        assert backend.credential_env_var == 'FAL_KEY'
        assert backend.enforces_timeout is True
