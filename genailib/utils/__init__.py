"""
Utilities
=========

Downloads, image helpers and storage adapters.
"""

from .download import download_url, Downloader
from .image_utils import detect_mime_type, encode_image, to_data_uri
from .storage import Storage, LocalStorage, S3Storage, get_storage, save_bytes

__all__ = [
    "download_url",
    "Downloader",
    "detect_mime_type",
    "encode_image",
    "to_data_uri",
    "Storage",
    "LocalStorage",
    "S3Storage",
    "get_storage",
    "save_bytes",
]
