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
"""Common pieces for hosted inference platform backends.

This module provides the backend interface every platform adapter implements,
the classified platform error, and helpers that turn HTTP failures into that
error.
"""

import httpx
from abc import ABC, abstractmethod
from loguru import logger
from qwen_image_mcp_server.consts import (
    HTTP_CONNECT_TIMEOUT,
    HTTP_POOL_TIMEOUT,
    HTTP_READ_TIMEOUT,
    HTTP_WRITE_TIMEOUT,
)
from qwen_image_mcp_server.models.common import (
    ErrorKind,
    GenerationResult,
    QwenImageParams,
    validate_request,
)
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type


HTTP_TIMEOUT = httpx.Timeout(
    connect=HTTP_CONNECT_TIMEOUT,
    read=HTTP_READ_TIMEOUT,
    write=HTTP_WRITE_TIMEOUT,
    pool=HTTP_POOL_TIMEOUT,
)


class PlatformError(Exception):
    """A failed call to the hosted inference platform.

    Attributes:
        message: Human-readable error message.
        kind: Classification used to pick a remediation hint.
        status_code: HTTP status returned by the platform, if any.
    """
    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        status_code: Optional[int] = None,
    ):
        """Initialize PlatformError.

        Args:
            message: Human-readable error message.
            kind: Error classification.
            status_code: HTTP status code, if the failure came from a response.
        """
        self.message = message
        self.kind = kind
        self.status_code = status_code
        super().__init__(message)


_STATUS_KINDS = {
    400: ErrorKind.INVALID_INPUT,
    401: ErrorKind.AUTH_FAILURE,
    403: ErrorKind.AUTH_FAILURE,
    408: ErrorKind.TIMEOUT,
    422: ErrorKind.INVALID_INPUT,
    429: ErrorKind.RATE_LIMITED,
    504: ErrorKind.TIMEOUT,
}


def classify_error_message(message: str) -> ErrorKind:
    """Classify an unstructured error message by the phrases platforms use.

    Only used when neither an HTTP status nor an exception type tells us more.
    """
    text = message.lower()
    if 'timeout' in text or 'timed out' in text:
        return ErrorKind.TIMEOUT
    if 'authentication' in text or 'unauthorized' in text:
        return ErrorKind.AUTH_FAILURE
    if 'rate limit' in text:
        return ErrorKind.RATE_LIMITED
    if 'validation' in text:
        return ErrorKind.INVALID_INPUT
    return ErrorKind.UNKNOWN


def classify_status(status_code: int) -> ErrorKind:
    """Map an HTTP status code to an error kind."""
    return _STATUS_KINDS.get(status_code, ErrorKind.UNKNOWN)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        detail = body.get('detail') or body.get('error') or body.get('title')
        if detail:
            return str(detail)
    return str(body)


def raise_for_platform_status(response: httpx.Response, platform: str) -> None:
    """Raise a classified PlatformError for any non-2xx response.

    Args:
        response: The platform response.
        platform: Display name used in the message.

    Raises:
        PlatformError: If the response is not successful.
    """
    if response.is_success:
        return
    detail = _error_detail(response)
    kind = classify_status(response.status_code)
    if kind is ErrorKind.UNKNOWN:
        kind = classify_error_message(detail)
    logger.error(
        f'{platform} API error: HTTP {response.status_code}',
        extra={'status_code': response.status_code, 'error_kind': kind.value}
    )
    raise PlatformError(
        message=f'{platform} returned HTTP {response.status_code}: {detail}',
        kind=kind,
        status_code=response.status_code,
    )


def read_platform_json(response: httpx.Response, platform: str) -> Any:
    """Decode a successful platform response body.

    Args:
        response: The platform response.
        platform: Display name used in the message.

    Returns:
        The decoded JSON body.

    Raises:
        PlatformError: If the body is not valid JSON.
    """
    try:
        return response.json()
    except ValueError as e:
        logger.error(f'{platform} returned a non-JSON body with HTTP {response.status_code}')
        raise PlatformError(
            message=f'{platform} returned an invalid JSON body: {str(e)}',
            kind=ErrorKind.UNKNOWN,
            status_code=response.status_code,
        ) from e


def wrap_transport_error(error: Exception, platform: str) -> PlatformError:
    """Convert an httpx transport failure into a classified PlatformError."""
    if isinstance(error, httpx.TimeoutException):
        return PlatformError(f'{platform} request timeout: {error}', kind=ErrorKind.TIMEOUT)
    message = f'{platform} request failed: {error}'
    return PlatformError(message, kind=classify_error_message(message))


class InferenceBackend(ABC):
    """Capability interface of a hosted platform serving Qwen Image.

    A backend owns everything that differs between platforms: the parameter
    set, the payload shape, the call protocol and the response shape. The
    dispatcher drives it in order: ``validate``, ``build_payload``, ``invoke``,
    ``parse_result``.
    """

    name: str = 'base'
    display_name: str = 'base'
    model_id: str = ''
    credential_env_var: str = ''
    params_model: Type[QwenImageParams] = QwenImageParams
    enforces_timeout: bool = False

    def __init__(self, api_key: Optional[str] = None):
        """Initialize the backend.

        Args:
            api_key: Platform credential. Calls fail with an auth error without it.
        """
        self.api_key = api_key

    def validate(self, arguments: Optional[Mapping[str, Any]]) -> QwenImageParams:
        """Validate raw tool arguments against this platform's parameter set."""
        return validate_request(self.params_model, arguments)

    @abstractmethod
    def build_payload(self, params: QwenImageParams) -> Dict[str, Any]:
        """Build the platform request body."""

    @abstractmethod
    async def invoke(self, payload: Dict[str, Any], client: httpx.AsyncClient) -> Dict[str, Any]:
        """Run the model and return the raw platform response.

        Raises:
            PlatformError: On any platform or transport failure.
        """

    @abstractmethod
    def parse_result(self, raw: Dict[str, Any], params: QwenImageParams) -> GenerationResult:
        """Normalize the raw platform response."""

    @abstractmethod
    def file_extension(self, params: QwenImageParams) -> str:
        """File extension for images produced with these parameters."""

    @abstractmethod
    def describe_params(self, params: QwenImageParams) -> List[Tuple[str, str]]:
        """Ordered label/value pairs reported back to the caller."""
