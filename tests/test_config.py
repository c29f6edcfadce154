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
"""Tests for the configuration module."""

import os
import pytest
from pydantic import ValidationError
from qwen_image_mcp_server.config import (
    BackendName,
    ConfigurationError,
    ServerConfig,
    configure_logging,
    log_startup_status,
)
from unittest.mock import patch


class TestServerConfigFromEnv:
    """Tests for ServerConfig.from_env."""

    def test_defaults(self):
        """Test the configuration of an empty environment."""
        config = ServerConfig.from_env({})
        assert config.backend == BackendName.FAL
        assert config.api_key is None
        assert config.has_credentials is False
        assert config.environment == 'production'
        assert config.log_level == 'INFO'
        assert config.max_concurrent_requests == 3
        assert config.request_timeout_ms == 300000
        assert config.request_timeout_seconds == 300
        assert config.credential_env_var == 'FAL_KEY'

    def test_fal_credential(self):
        """Test that FAL_KEY is picked up for the fal.ai backend."""
        config = ServerConfig.from_env({'FAL_KEY': 'abc', 'REPLICATE_API_TOKEN': 'ignored'})
        assert config.api_key == 'abc'
        assert config.has_credentials is True

    def test_replicate_backend(self):
        """Test selecting Replicate and its credential."""
        config = ServerConfig.from_env(
            {'QWEN_IMAGE_BACKEND': 'Replicate', 'REPLICATE_API_TOKEN': 'r8_token', 'FAL_KEY': 'x'}
        )
        assert config.backend == BackendName.REPLICATE
        assert config.api_key == 'r8_token'
        assert config.credential_env_var == 'REPLICATE_API_TOKEN'

    def test_unknown_backend(self):
        """Test that an unknown backend name is a startup error."""
        with pytest.raises(ConfigurationError, match='Must be one of: fal, replicate'):
            ServerConfig.from_env({'QWEN_IMAGE_BACKEND': 'midjourney'})

    def test_empty_credential_is_missing(self):
        """Test that an empty credential counts as not set."""
        config = ServerConfig.from_env({'FAL_KEY': ''})
        assert config.api_key is None
        assert config.has_credentials is False

    def test_tuning_values(self):
        """Test parsing of the numeric tuning values."""
        config = ServerConfig.from_env(
            {
                'MAX_CONCURRENT_REQUESTS': '8',
                'REQUEST_TIMEOUT': '1500',
                'QWEN_IMAGE_ENV': 'development',
            }
        )
        assert config.max_concurrent_requests == 8
        assert config.request_timeout_ms == 1500
        assert config.request_timeout_seconds == 1.5
        assert config.environment == 'development'

    @pytest.mark.parametrize('raw', ['abc', '0', '-5', ' '])
    def test_invalid_numbers_fall_back(self, raw):
        """Test that unusable numbers fall back to the defaults."""
        config = ServerConfig.from_env({'REQUEST_TIMEOUT': raw, 'MAX_CONCURRENT_REQUESTS': raw})
        assert config.request_timeout_ms == 300000
        assert config.max_concurrent_requests == 3

    @pytest.mark.parametrize(
        'environ,expected',
        [
            ({'LOG_LEVEL': 'debug'}, 'DEBUG'),
            ({'LOG_LEVEL': 'warn'}, 'WARNING'),
            ({'FASTMCP_LOG_LEVEL': 'error', 'LOG_LEVEL': 'debug'}, 'ERROR'),
        ],
    )
    def test_log_level(self, environ, expected):
        """Test log level aliases and precedence."""
        assert ServerConfig.from_env(environ).log_level == expected

    def test_frozen(self):
        """Test that the configuration cannot be mutated after startup."""
        config = ServerConfig.from_env({})
        with pytest.raises(ValidationError):
            config.api_key = 'changed'


class TestResolveImagesDir:
    """Tests for ServerConfig.resolve_images_dir."""

    def test_default_is_cwd_images(self):
        """Test the default download directory."""
        config = ServerConfig()
        assert config.resolve_images_dir() == os.path.join(os.getcwd(), 'images')

    def test_override(self, tmp_path):
        """Test the QWEN_IMAGE_OUTPUT_DIR override."""
        config = ServerConfig.from_env({'QWEN_IMAGE_OUTPUT_DIR': str(tmp_path / 'out')})
        assert config.resolve_images_dir() == str(tmp_path / 'out')

    def test_workspace_dir_wins(self, tmp_path):
        """Test that a per-call workspace directory takes precedence."""
        config = ServerConfig(images_dir='/somewhere/else')
        assert config.resolve_images_dir(str(tmp_path)) == str(tmp_path / 'images')


class TestLogStartupStatus:
    """Tests for log_startup_status."""

    def test_missing_credential_does_not_raise(self):
        """Test that a missing credential is logged, not fatal."""
        log_startup_status(ServerConfig.from_env({}))

    def test_with_credential(self):
        """Test logging with a credential present."""
        log_startup_status(ServerConfig.from_env({'FAL_KEY': 'abc'}))


class TestConfigureLogging:
    """Tests for configure_logging."""

    @patch('qwen_image_mcp_server.config.logger')
    def test_uses_configured_level(self, mock_logger):
        """Test that the sink is added at the configured level."""
        configure_logging(ServerConfig(log_level='DEBUG'))

        mock_logger.remove.assert_called_once()
        assert mock_logger.add.call_args[1]['level'] == 'DEBUG'

    @patch('qwen_image_mcp_server.config.logger')
    def test_unknown_level_falls_back(self, mock_logger):
        """Test that an unknown level falls back to INFO with a warning."""
        mock_logger.add.side_effect = [ValueError('Level not found'), None]

        configure_logging(ServerConfig(log_level='VERBOSE'))

        assert mock_logger.add.call_args[1]['level'] == 'INFO'
        mock_logger.warning.assert_called_once()
