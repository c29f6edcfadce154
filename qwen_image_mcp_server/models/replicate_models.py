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
"""Pydantic models for Qwen Image parameters on Replicate."""

from qwen_image_mcp_server.consts import (
    REPLICATE_DEFAULT_GUIDANCE_SCALE,
    REPLICATE_DEFAULT_IMAGE_SIZE,
    REPLICATE_DEFAULT_INFERENCE_STEPS,
    REPLICATE_IMAGE_SIZES,
    REPLICATE_MAX_GUIDANCE_SCALE,
    REPLICATE_MAX_INFERENCE_STEPS,
    REPLICATE_MIN_GUIDANCE_SCALE,
    REPLICATE_MIN_INFERENCE_STEPS,
)
from qwen_image_mcp_server.models.common import QwenImageParams
from typing import ClassVar, Tuple


class ReplicateQwenImageParams(QwenImageParams):
    """Parameters for the ``qwen/qwen-image`` model on Replicate.

    Attributes:
        prompt: Text description of the image to generate.
        image_size: Explicit WIDTHxHEIGHT size (default 1024x768).
        num_inference_steps: Denoising steps (1-500, default 50).
        guidance_scale: CFG scale (1-20, default 4).
        seed: Optional seed for reproducible results.
        negative_prompt: What should not appear in the image.
    """
    IMAGE_SIZES: ClassVar[Tuple[str, ...]] = REPLICATE_IMAGE_SIZES
    STEPS_RANGE: ClassVar[Tuple[int, int]] = (
        REPLICATE_MIN_INFERENCE_STEPS,
        REPLICATE_MAX_INFERENCE_STEPS,
    )
    GUIDANCE_RANGE: ClassVar[Tuple[float, float]] = (
        REPLICATE_MIN_GUIDANCE_SCALE,
        REPLICATE_MAX_GUIDANCE_SCALE,
    )

    image_size: str = REPLICATE_DEFAULT_IMAGE_SIZE
    num_inference_steps: int = REPLICATE_DEFAULT_INFERENCE_STEPS
    guidance_scale: float = REPLICATE_DEFAULT_GUIDANCE_SCALE
