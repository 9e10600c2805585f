# Overview: Blob store used for worker photos and invoice attachments.

from __future__ import annotations

import os
import secrets

from werkzeug.utils import secure_filename


class BlobStore:
    """Interface: upload(data, filename) -> url."""

    def upload(self, data: bytes, filename: str | None = None) -> str:
        raise NotImplementedError


class LocalDirectoryBlobStore(BlobStore):
    """
    Writes blobs under a directory and returns a URL below base_url.

    File names are prefixed with a random token so two uploads of
    "photo.jpg" never collide.
    """

    def __init__(self, directory: str, base_url: str = "/uploads"):
        self.directory = directory
        self.base_url = base_url.rstrip("/")

    def upload(self, data: bytes, filename: str | None = None) -> str:
        if not data:
            raise ValueError("cannot upload empty blob")
        name = secure_filename(filename or "") or "blob"
        stored_name = f"{secrets.token_hex(8)}-{name}"
        os.makedirs(self.directory, exist_ok=True)
        with open(os.path.join(self.directory, stored_name), "wb") as fh:
            fh.write(data)
        return f"{self.base_url}/{stored_name}"
