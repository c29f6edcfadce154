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
# Constants
SERVER_NAME = 'qwen-image-mcp-server'
TOOL_NAME = 'generate_image'

FAL_QWEN_IMAGE_MODEL_ID = 'fal-ai/qwen-image'
REPLICATE_QWEN_IMAGE_MODEL_ID = 'qwen/qwen-image'

# Platform endpoints
FAL_QUEUE_BASE_URL = 'https://queue.fal.run'
REPLICATE_API_BASE_URL = 'https://api.replicate.com/v1'

# Credentials
FAL_KEY_ENV_VAR = 'FAL_KEY'
REPLICATE_TOKEN_ENV_VAR = 'REPLICATE_API_TOKEN'
FAL_KEYS_URL = 'https://fal.ai/dashboard/keys'
REPLICATE_KEYS_URL = 'https://replicate.com/account'

# Server defaults
DEFAULT_BACKEND = 'fal'
DEFAULT_ENVIRONMENT = 'production'
DEFAULT_LOG_LEVEL = 'INFO'
DEFAULT_MAX_CONCURRENT_REQUESTS = 3
DEFAULT_REQUEST_TIMEOUT_MS = 300000
DEFAULT_IMAGES_DIR = 'images'  # Default directory inside the working directory

# Filenames
FILENAME_PREFIX = 'qwen_image'
MAX_PROMPT_SLUG_LENGTH = 50

# fal.ai defaults
FAL_IMAGE_SIZES = (
    'square_hd',
    'square',
    'portrait_4_3',
    'portrait_16_9',
    'landscape_4_3',
    'landscape_16_9',
)
FAL_DEFAULT_IMAGE_SIZE = 'landscape_4_3'
FAL_MIN_INFERENCE_STEPS = 2
FAL_MAX_INFERENCE_STEPS = 250
FAL_DEFAULT_INFERENCE_STEPS = 30
FAL_MIN_GUIDANCE_SCALE = 0.0
FAL_MAX_GUIDANCE_SCALE = 20.0
FAL_DEFAULT_GUIDANCE_SCALE = 2.5
FAL_MIN_NUM_IMAGES = 1
FAL_MAX_NUM_IMAGES = 4
FAL_DEFAULT_NUM_IMAGES = 1
FAL_DEFAULT_OUTPUT_FORMAT = 'png'
FAL_DEFAULT_ACCELERATION = 'none'

# Replicate defaults
REPLICATE_IMAGE_SIZES = ('1024x1024', '720x1280', '1280x720', '768x1024', '1024x768')
REPLICATE_DEFAULT_IMAGE_SIZE = '1024x768'
REPLICATE_MIN_INFERENCE_STEPS = 1
REPLICATE_MAX_INFERENCE_STEPS = 500
REPLICATE_DEFAULT_INFERENCE_STEPS = 50
REPLICATE_MIN_GUIDANCE_SCALE = 1.0
REPLICATE_MAX_GUIDANCE_SCALE = 20.0
REPLICATE_DEFAULT_GUIDANCE_SCALE = 4.0
REPLICATE_OUTPUT_EXTENSION = 'webp'

# HTTP
HTTP_CONNECT_TIMEOUT = 10.0  # Seconds to wait for connection
HTTP_READ_TIMEOUT = 180.0  # Seconds to wait for a response body
HTTP_WRITE_TIMEOUT = 30.0
HTTP_POOL_TIMEOUT = 10.0
QUEUE_POLL_INTERVAL = 1.0  # Seconds between queue status polls
DOWNLOAD_CHUNK_SIZE = 64 * 1024
DATA_URI_PREFIX = 'data:'

ISSUES_URL = 'https://github.com/PierrunoYT/qwen-image-fal-mcp-server/issues'


# Qwen Image Prompt Best Practices
PROMPT_INSTRUCTIONS = """
# Qwen Image Prompting Best Practices

## General Guidelines

- Qwen Image is particularly strong at rendering text inside images. Put the exact
  text you want rendered in quotes, e.g. a storefront sign reading "OPEN 24 HOURS".
- Be descriptive: subject, environment, lighting, camera framing and visual style.
- Use the `negative_prompt` parameter to exclude objects or characteristics instead of
  writing "no ..." in the prompt.
- Use a fixed `seed` while refining a prompt, then vary the seed for variations.

## Parameters

- `num_inference_steps`: more steps generally produce higher quality images but take longer.
- `guidance_scale`: how closely the model follows the prompt. Higher values stick closer
  to the prompt.
- `acceleration` (fal.ai only): 'regular' balances speed and quality, 'high' is
  recommended for images without text.

## Examples

**Prompt:** "A cozy coffee shop window at dusk, a chalkboard sign that says \"Fresh Bread Daily\", warm light, photorealistic"

**Prompt:** "Minimalist poster with the title \"QWEN\" in bold sans-serif letters over a gradient sunset, flat illustration"
**Negative Prompt:** "blurry text, watermark"
"""
