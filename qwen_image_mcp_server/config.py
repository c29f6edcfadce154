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
"""Server configuration loaded once from the process environment.

The configuration is an immutable value built at startup and handed to every
component. A missing platform credential is not fatal: the server keeps running
and every tool call explains the problem instead.
"""

import os
import sys
from enum import Enum
from loguru import logger
from pydantic import BaseModel, ConfigDict
from qwen_image_mcp_server.consts import (
    DEFAULT_BACKEND,
    DEFAULT_ENVIRONMENT,
    DEFAULT_IMAGES_DIR,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_CONCURRENT_REQUESTS,
    DEFAULT_REQUEST_TIMEOUT_MS,
    FAL_KEY_ENV_VAR,
    FAL_KEYS_URL,
    REPLICATE_KEYS_URL,
    REPLICATE_TOKEN_ENV_VAR,
)
from typing import Mapping, Optional


class BackendName(str, Enum):
    """Supported hosted inference platforms.

    Attributes:
        FAL: fal.ai.
        REPLICATE: Replicate.
    """
    FAL = "fal"
    REPLICATE = "replicate"


class ConfigurationError(Exception):
    """Raised when the environment holds a value the server cannot start with."""


_CREDENTIAL_ENV_VARS = {
    BackendName.FAL: FAL_KEY_ENV_VAR,
    BackendName.REPLICATE: REPLICATE_TOKEN_ENV_VAR,
}

_CREDENTIAL_URLS = {
    BackendName.FAL: FAL_KEYS_URL,
    BackendName.REPLICATE: REPLICATE_KEYS_URL,
}

_LOG_LEVEL_ALIASES = {'WARN': 'WARNING', 'FATAL': 'CRITICAL'}


def _parse_positive_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f'Ignoring non-numeric {name}={raw!r}, using {default}')
        return default
    if value <= 0:
        logger.warning(f'Ignoring non-positive {name}={raw!r}, using {default}')
        return default
    return value


def _normalize_log_level(raw: str) -> str:
    level = raw.strip().upper()
    return _LOG_LEVEL_ALIASES.get(level, level)


class ServerConfig(BaseModel):
    """Immutable server configuration.

    Attributes:
        backend: Which hosted platform serves the model.
        api_key: Credential for the chosen platform, if set.
        environment: Deployment mode tag (e.g. 'production', 'development').
        log_level: loguru level name.
        max_concurrent_requests: Declared concurrency hint. Not enforced.
        request_timeout_ms: Timeout for backends that race their platform call.
        images_dir: Directory downloaded images are written to, if overridden.
    """
    model_config = ConfigDict(frozen=True)

    backend: BackendName = BackendName.FAL
    api_key: Optional[str] = None
    environment: str = DEFAULT_ENVIRONMENT
    log_level: str = DEFAULT_LOG_LEVEL
    max_concurrent_requests: int = DEFAULT_MAX_CONCURRENT_REQUESTS
    request_timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS
    images_dir: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'ServerConfig':
        """Build the configuration from environment variables.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Returns:
            The loaded configuration.

        Raises:
            ConfigurationError: If QWEN_IMAGE_BACKEND names an unknown platform.
        """
        if environ is None:
            environ = os.environ

        backend_raw = environ.get('QWEN_IMAGE_BACKEND', DEFAULT_BACKEND).strip().lower()
        try:
            backend = BackendName(backend_raw)
        except ValueError:
            choices = ', '.join(b.value for b in BackendName)
            raise ConfigurationError(
                f'Invalid QWEN_IMAGE_BACKEND {backend_raw!r}. Must be one of: {choices}'
            )

        api_key = environ.get(_CREDENTIAL_ENV_VARS[backend]) or None
        log_level = environ.get('FASTMCP_LOG_LEVEL') or environ.get('LOG_LEVEL') or DEFAULT_LOG_LEVEL

        return cls(
            backend=backend,
            api_key=api_key,
            environment=environ.get('QWEN_IMAGE_ENV', DEFAULT_ENVIRONMENT),
            log_level=_normalize_log_level(log_level),
            max_concurrent_requests=_parse_positive_int(
                environ, 'MAX_CONCURRENT_REQUESTS', DEFAULT_MAX_CONCURRENT_REQUESTS
            ),
            request_timeout_ms=_parse_positive_int(
                environ, 'REQUEST_TIMEOUT', DEFAULT_REQUEST_TIMEOUT_MS
            ),
            images_dir=environ.get('QWEN_IMAGE_OUTPUT_DIR') or None,
        )

    @property
    def has_credentials(self) -> bool:
        """Whether a platform credential was provided."""
        return bool(self.api_key)

    @property
    def credential_env_var(self) -> str:
        """Name of the environment variable holding the platform credential."""
        return _CREDENTIAL_ENV_VARS[self.backend]

    @property
    def request_timeout_seconds(self) -> float:
        """Request timeout in seconds."""
        return self.request_timeout_ms / 1000

    def resolve_images_dir(self, workspace_dir: Optional[str] = None) -> str:
        """Return the absolute directory generated images are written to.

        Args:
            workspace_dir: Per-call workspace. Images go to ``<workspace_dir>/images``.

        Returns:
            Absolute directory path.
        """
        if workspace_dir:
            return os.path.abspath(os.path.join(workspace_dir, DEFAULT_IMAGES_DIR))
        if self.images_dir:
            return os.path.abspath(self.images_dir)
        return os.path.join(os.getcwd(), DEFAULT_IMAGES_DIR)


def configure_logging(config: ServerConfig) -> None:
    """Route loguru output to stderr at the configured level.

    stdout carries the MCP stdio transport, so nothing else may write to it.
    """
    logger.remove()
    try:
        logger.add(sys.stderr, level=config.log_level)
    except ValueError:
        logger.add(sys.stderr, level=DEFAULT_LOG_LEVEL)
        logger.warning(f'Unknown log level {config.log_level!r}, using {DEFAULT_LOG_LEVEL}')


def log_startup_status(config: ServerConfig) -> None:
    """Log whether the server can reach its platform, without failing if it cannot."""
    env_var = config.credential_env_var
    if not config.has_credentials:
        logger.error(f'{env_var} environment variable is required')
        logger.info(
            f'Please set your {config.backend.value} API key: export {env_var}=your_key_here'
        )
        logger.info(f'Get your key from: {_CREDENTIAL_URLS[config.backend]}')
        return

    logger.info(f'{config.backend.value} client initialized successfully')
    logger.debug(
        'Configuration',
        extra={
            'environment': config.environment,
            'log_level': config.log_level,
            'max_concurrent_requests': config.max_concurrent_requests,
            'request_timeout_ms': config.request_timeout_ms,
        }
    )
