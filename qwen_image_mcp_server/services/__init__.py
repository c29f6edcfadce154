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
"""Inference backends and the generation pipeline for the Qwen Image MCP server."""

from qwen_image_mcp_server.config import BackendName, ServerConfig
from qwen_image_mcp_server.services.fal_service import FalBackend
from qwen_image_mcp_server.services.platform_common import InferenceBackend
from qwen_image_mcp_server.services.replicate_service import ReplicateBackend


_BACKENDS = {
    BackendName.FAL: FalBackend,
    BackendName.REPLICATE: ReplicateBackend,
}


def get_backend(config: ServerConfig) -> InferenceBackend:
    """Create the inference backend selected by the configuration."""
    return _BACKENDS[config.backend](api_key=config.api_key)


__all__ = ['FalBackend', 'InferenceBackend', 'ReplicateBackend', 'get_backend']
