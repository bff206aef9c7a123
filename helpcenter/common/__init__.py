"""Common utilities shared across the engine.

Includes:
- ``config``: pydantic-settings configuration from environment variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics helpers.
- ``errors``: the exception hierarchy.

Import pattern:
- from helpcenter.common.config import HelpCenterConfig
- from helpcenter.common.logging import configure_logging
"""
