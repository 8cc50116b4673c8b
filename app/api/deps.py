from fastapi import Request

from app.services.encryption import EncryptionService


def get_encryption(request: Request) -> EncryptionService:
    """The process-wide EncryptionService built once in create_app()."""
    return request.app.state.encryption


def get_settings(request: Request):
    return request.app.state.settings
