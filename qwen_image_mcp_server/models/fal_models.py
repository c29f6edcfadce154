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
"""Pydantic models for Qwen Image parameters on fal.ai.

This module defines the request model for the ``fal-ai/qwen-image`` endpoint,
which adds batch size, safety checking, output format and acceleration controls
on top of the common parameters.
"""

from pydantic import field_validator
from pydantic_core import PydanticCustomError
from qwen_image_mcp_server.consts import (
    FAL_DEFAULT_GUIDANCE_SCALE,
    FAL_DEFAULT_IMAGE_SIZE,
    FAL_DEFAULT_INFERENCE_STEPS,
    FAL_DEFAULT_NUM_IMAGES,
    FAL_IMAGE_SIZES,
    FAL_MAX_GUIDANCE_SCALE,
    FAL_MAX_INFERENCE_STEPS,
    FAL_MAX_NUM_IMAGES,
    FAL_MIN_GUIDANCE_SCALE,
    FAL_MIN_INFERENCE_STEPS,
    FAL_MIN_NUM_IMAGES,
)
from qwen_image_mcp_server.models.common import Acceleration, OutputFormat, QwenImageParams
from typing import Any, ClassVar, Optional, Tuple


class FalQwenImageParams(QwenImageParams):
    """Parameters for Qwen Image text-to-image generation on fal.ai.

    Attributes:
        prompt: Text description of the image to generate.
        image_size: One of the fal.ai size presets (default landscape_4_3).
        num_inference_steps: Denoising steps (2-250, default 30).
        guidance_scale: CFG scale (0-20, default 2.5).
        seed: Optional seed for reproducible results.
        negative_prompt: What should not appear in the image.
        sync_mode: Wait for the image data before the platform responds.
        num_images: Number of images to generate (1-4, default 1).
        enable_safety_checker: Filter inappropriate content (default on).
        output_format: png or jpeg (default png).
        acceleration: none, regular or high (default none).
    """
    IMAGE_SIZES: ClassVar[Tuple[str, ...]] = FAL_IMAGE_SIZES
    STEPS_RANGE: ClassVar[Tuple[int, int]] = (FAL_MIN_INFERENCE_STEPS, FAL_MAX_INFERENCE_STEPS)
    GUIDANCE_RANGE: ClassVar[Tuple[float, float]] = (
        FAL_MIN_GUIDANCE_SCALE,
        FAL_MAX_GUIDANCE_SCALE,
    )
    NUM_IMAGES_RANGE: ClassVar[Tuple[int, int]] = (FAL_MIN_NUM_IMAGES, FAL_MAX_NUM_IMAGES)

    image_size: str = FAL_DEFAULT_IMAGE_SIZE
    num_inference_steps: int = FAL_DEFAULT_INFERENCE_STEPS
    guidance_scale: float = FAL_DEFAULT_GUIDANCE_SCALE
    sync_mode: bool = False
    num_images: int = FAL_DEFAULT_NUM_IMAGES
    enable_safety_checker: bool = True
    output_format: OutputFormat = OutputFormat.PNG
    acceleration: Acceleration = Acceleration.NONE

    @field_validator('num_images', mode='before')
    @classmethod
    def reject_boolean_count(cls, v: Any) -> Any:
        """Reject booleans passed as an image count."""
        if isinstance(v, bool):
            raise PydanticCustomError('not_a_number', 'must be a number, not a boolean')
        return v

    @field_validator('num_images')
    @classmethod
    def validate_num_images(cls, v: int) -> int:
        """Check the batch size against the published range."""
        low, high = cls.NUM_IMAGES_RANGE
        if not low <= v <= high:
            raise PydanticCustomError(
                'out_of_range', 'must be between {low} and {high}', {'low': low, 'high': high}
            )
        return v

    @field_validator('output_format', mode='before')
    @classmethod
    def validate_output_format(cls, v: Any) -> Any:
        """Report the legal formats instead of pydantic's enum message."""
        if isinstance(v, OutputFormat):
            return v
        if not isinstance(v, str) or v not in {fmt.value for fmt in OutputFormat}:
            raise PydanticCustomError(
                'invalid_choice',
                'must be one of: {choices}',
                {'choices': ', '.join(fmt.value for fmt in OutputFormat)},
            )
        return v

    @field_validator('acceleration', mode='before')
    @classmethod
    def validate_acceleration(cls, v: Any) -> Any:
        """Report the legal acceleration levels instead of pydantic's enum message."""
        if isinstance(v, Acceleration):
            return v
        if not isinstance(v, str) or v not in {level.value for level in Acceleration}:
            raise PydanticCustomError(
                'invalid_choice',
                'must be one of: {choices}',
                {'choices': ', '.join(level.value for level in Acceleration)},
            )
        return v

    @classmethod
    def constraint_for(cls, field: str) -> Optional[str]:
        """Describe the legal values of a field, including the fal.ai-only ones."""
        if field == 'num_images':
            low, high = cls.NUM_IMAGES_RANGE
            return f'must be an integer between {low} and {high}'
        if field in ('sync_mode', 'enable_safety_checker'):
            return 'must be a boolean'
        return super().constraint_for(field)
