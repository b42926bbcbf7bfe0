"""
Утилиты проекта.

Логирование и маскирование секретов.
"""

from .logger import get_logger, setup_logger, setup_uvicorn_logging, mask_secrets

__all__ = [
    'get_logger',
    'setup_logger',
    'setup_uvicorn_logging',
    'mask_secrets'
]
