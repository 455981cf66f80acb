"""HTTP surface for the correction service."""

from perspective_service.api.app import create_app

__all__ = ["create_app"]
