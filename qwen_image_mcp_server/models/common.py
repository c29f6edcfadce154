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
"""Common models and enums shared by all Qwen Image inference backends."""

from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Type, TypeVar


class OutputFormat(str, Enum):
    """Output formats accepted by the fal.ai endpoint.

    Attributes:
        JPEG: JPEG image format.
        PNG: PNG image format.
    """
    JPEG = "jpeg"
    PNG = "png"


class Acceleration(str, Enum):
    """fal.ai acceleration levels, trading quality for speed.

    Attributes:
        NONE: No acceleration.
        REGULAR: Balanced speed and quality.
        HIGH: Fastest; recommended for images without text.
    """
    NONE = "none"
    REGULAR = "regular"
    HIGH = "high"


class ErrorKind(str, Enum):
    """Classification of a failed platform call.

    Attributes:
        TIMEOUT: The call did not finish in time.
        AUTH_FAILURE: The credential was rejected.
        RATE_LIMITED: The platform throttled the request.
        INVALID_INPUT: The platform rejected the request parameters.
        UNKNOWN: Anything else.
    """
    TIMEOUT = "timeout"
    AUTH_FAILURE = "auth_failure"
    RATE_LIMITED = "rate_limited"
    INVALID_INPUT = "invalid_input"
    UNKNOWN = "unknown"


class DownloadStatus(str, Enum):
    """Outcome of materializing one generated image."""
    DOWNLOADED = "downloaded"
    FAILED = "failed"
    SKIPPED = "skipped"


class InvalidParameterError(ValueError):
    """Raised when tool arguments violate the declared parameter constraints.

    Attributes:
        field: Name of the offending parameter.
        reason: What is wrong with it, including the legal set or range.
    """
    def __init__(self, field: str, reason: str):
        """Initialize InvalidParameterError.

        Args:
            field: Name of the offending parameter.
            reason: Human-readable reason naming the legal values.
        """
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


def _format_number(value: float) -> str:
    return f"{value:g}"


class QwenImageParams(BaseModel):
    """Parameters shared by every Qwen Image backend.

    Subclasses declare the platform-specific size set, numeric ranges and
    defaults through the class-level constants below; the validators in this
    class read them from ``cls`` so each backend gets its own bounds.

    Attributes:
        prompt: Text description of the image to generate.
        image_size: Platform-specific size identifier.
        num_inference_steps: Number of denoising steps.
        guidance_scale: How closely the model follows the prompt.
        seed: Optional seed for reproducible results.
        negative_prompt: What should not appear in the image.
    """
    model_config = ConfigDict(extra='ignore')

    IMAGE_SIZES: ClassVar[Tuple[str, ...]] = ()
    STEPS_RANGE: ClassVar[Tuple[int, int]] = (1, 1)
    GUIDANCE_RANGE: ClassVar[Tuple[float, float]] = (0.0, 0.0)

    prompt: str = Field(default='', validate_default=True)
    image_size: str
    num_inference_steps: int
    guidance_scale: float
    seed: Optional[int] = None
    negative_prompt: str = ''

    @field_validator('prompt', mode='before')
    @classmethod
    def validate_prompt(cls, v: Any) -> str:
        """Reject missing, non-string and blank prompts."""
        if not isinstance(v, str) or not v.strip():
            raise PydanticCustomError(
                'invalid_prompt', 'is required and must be a non-empty string'
            )
        return v

    @field_validator('num_inference_steps', 'guidance_scale', 'seed', mode='before')
    @classmethod
    def reject_booleans(cls, v: Any) -> Any:
        """Booleans are ints to Python but never a valid numeric argument here."""
        if isinstance(v, bool):
            raise PydanticCustomError('not_a_number', 'must be a number, not a boolean')
        return v

    @field_validator('image_size')
    @classmethod
    def validate_image_size(cls, v: str) -> str:
        """Check the size against the backend's published set."""
        if v not in cls.IMAGE_SIZES:
            raise PydanticCustomError(
                'invalid_choice',
                'must be one of: {choices}',
                {'choices': ', '.join(cls.IMAGE_SIZES)},
            )
        return v

    @field_validator('num_inference_steps')
    @classmethod
    def validate_steps(cls, v: int) -> int:
        """Check the step count against the backend's published range."""
        low, high = cls.STEPS_RANGE
        if not low <= v <= high:
            raise PydanticCustomError(
                'out_of_range', 'must be between {low} and {high}', {'low': low, 'high': high}
            )
        return v

    @field_validator('guidance_scale')
    @classmethod
    def validate_guidance(cls, v: float) -> float:
        """Check the guidance scale against the backend's published range."""
        low, high = cls.GUIDANCE_RANGE
        if not low <= v <= high:
            raise PydanticCustomError(
                'out_of_range',
                'must be between {low} and {high}',
                {'low': _format_number(low), 'high': _format_number(high)},
            )
        return v

    @classmethod
    def constraint_for(cls, field: str) -> Optional[str]:
        """Describe the legal values of a field, for type errors raised before our validators."""
        if field == 'image_size':
            return f"must be one of: {', '.join(cls.IMAGE_SIZES)}"
        if field == 'num_inference_steps':
            low, high = cls.STEPS_RANGE
            return f'must be an integer between {low} and {high}'
        if field == 'guidance_scale':
            low, high = cls.GUIDANCE_RANGE
            return f'must be a number between {_format_number(low)} and {_format_number(high)}'
        if field == 'seed':
            return 'must be an integer'
        if field == 'negative_prompt':
            return 'must be a string'
        return None


ParamsT = TypeVar('ParamsT', bound=QwenImageParams)

# Error types raised by our own validators, whose messages already name the legal values
_DESCRIPTIVE_ERROR_TYPES = frozenset(
    {'invalid_prompt', 'invalid_choice', 'out_of_range'}
)


def validate_request(params_model: Type[ParamsT], arguments: Optional[Mapping[str, Any]]) -> ParamsT:
    """Turn a loosely-typed argument bag into a fully-defaulted request.

    Absent and null optional fields take their documented defaults, unknown
    fields are ignored. The first violation is reported.

    Args:
        params_model: The backend's parameter model class.
        arguments: Raw tool arguments.

    Returns:
        The validated parameter model.

    Raises:
        InvalidParameterError: Naming the offending field and its legal set or range.
    """
    cleaned: Dict[str, Any] = {
        key: value for key, value in (arguments or {}).items() if value is not None
    }
    try:
        return params_model(**cleaned)
    except ValidationError as e:
        error = e.errors()[0]
        field = str(error['loc'][0]) if error['loc'] else 'arguments'
        reason = error['msg']
        if error['type'] not in _DESCRIPTIVE_ERROR_TYPES:
            reason = params_model.constraint_for(field) or reason
        raise InvalidParameterError(field, reason) from e


class GeneratedImage(BaseModel):
    """One image produced by the platform.

    Attributes:
        url: Where the platform serves the image.
        width: Width in pixels, if reported.
        height: Height in pixels, if reported.
    """
    url: Any = None
    width: Optional[int] = None
    height: Optional[int] = None


class GenerationResult(BaseModel):
    """Normalized platform response.

    Attributes:
        images: Produced images, in platform order.
        seed: Seed the platform used, if known.
        request_id: Platform-assigned request or prediction identifier.
        prompt: Prompt as echoed back by the platform.
        has_nsfw_concepts: NSFW flags aligned by index with ``images``.
        generation_time_ms: Wall-clock duration of the platform call.
    """
    images: List[GeneratedImage] = Field(default_factory=list)
    seed: Optional[int] = None
    request_id: Optional[str] = None
    prompt: Optional[str] = None
    has_nsfw_concepts: List[bool] = Field(default_factory=list)
    generation_time_ms: int = 0

    @property
    def has_nsfw_content(self) -> bool:
        """Whether any image was flagged by the safety checker."""
        return any(self.has_nsfw_concepts)


class DownloadedImage(BaseModel):
    """A generated image after the attempt to store it locally.

    Attributes:
        index: Zero-based position in the batch.
        url: Source URL (kept even when the download failed).
        local_path: Absolute path of the stored file, empty string on failure.
        status: Whether the image was downloaded, failed or skipped.
        width: Width in pixels, if known.
        height: Height in pixels, if known.
        error: Failure reason for failed or skipped images.
    """
    index: int
    url: str
    local_path: str = ''
    status: DownloadStatus
    width: Optional[int] = None
    height: Optional[int] = None
    error: Optional[str] = None


class ToolResponse(BaseModel):
    """Rendered result of one tool call.

    Attributes:
        text: Human-readable summary or error block.
        is_error: Whether the call failed.
        paths: Local paths of the images that were stored.
    """
    text: str
    is_error: bool = False
    paths: List[str] = Field(default_factory=list)
