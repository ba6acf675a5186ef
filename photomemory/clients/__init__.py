"""Client implementations for Google services."""

from .google import GoogleOAuthClient, PhotosPickerClient

__all__ = ["GoogleOAuthClient", "PhotosPickerClient"]
