"""
Object storage for offer background images.

Backgrounds live under `backgrounds/<uid>/`; a user may only sign URLs for
objects in their own prefix. Production uses Tencent COS through its
S3-compatible API, tests use the in-memory client.
"""

from __future__ import annotations

import posixpath
import uuid
from dataclasses import dataclass, field
from typing import Dict, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

BACKGROUND_ROOT = "backgrounds"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def background_prefix(uid: str) -> str:
    return f"{BACKGROUND_ROOT}/{uid}/"


def new_background_path(uid: str, extension: str) -> str:
    return f"{background_prefix(uid)}{uuid.uuid4().hex}.{extension}"


def is_own_background(path: str, uid: str) -> bool:
    """True when `path` names an object inside the user's background prefix."""
    if not path or path.startswith("/") or "\\" in path:
        return False
    if posixpath.normpath(path) != path:
        return False
    return path.startswith(background_prefix(uid)) and path != background_prefix(uid)


class StorageClient(Protocol):
    """What the API needs from object storage."""

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        ...

    def presign_put(
        self,
        path: str,
        expires_in: int = 3600,
        content_type: str = DEFAULT_CONTENT_TYPE,
    ) -> str:
        ...

    def upload_bytes(
        self, path: str, data: bytes, content_type: str = DEFAULT_CONTENT_TYPE
    ) -> None:
        ...

    def get_bytes(self, path: str) -> bytes:
        """Raises FileNotFoundError when nothing is stored at `path`."""
        ...


@dataclass
class InMemoryStorageClient:
    """Keeps uploads in dicts; signed URLs point at a fake host."""

    base_url: str = "https://storage.greenskill.test"
    stored_objects: Dict[str, bytes] = field(default_factory=dict)
    content_types: Dict[str, str] = field(default_factory=dict)

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        return f"{self.base_url}/{path}?op=get&expires={expires_in}"

    def presign_put(
        self,
        path: str,
        expires_in: int = 3600,
        content_type: str = DEFAULT_CONTENT_TYPE,
    ) -> str:
        return (
            f"{self.base_url}/{path}?op=put&expires={expires_in}"
            f"&content-type={content_type}"
        )

    def upload_bytes(
        self, path: str, data: bytes, content_type: str = DEFAULT_CONTENT_TYPE
    ) -> None:
        self.stored_objects[path] = bytes(data)
        self.content_types[path] = content_type

    def get_bytes(self, path: str) -> bytes:
        if path not in self.stored_objects:
            raise FileNotFoundError(path)
        return self.stored_objects[path]

    def reset(self) -> None:
        self.stored_objects.clear()
        self.content_types.clear()


@dataclass
class CosStorageClient:
    """
    Tencent COS bucket accessed with boto3.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str

    def __post_init__(self):
        # COS only accepts virtual-hosted style requests.
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint,
            region_name=self.region,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=Config(
                s3={"addressing_style": "virtual"}, signature_version="s3v4"
            ),
        )

    def _presign(self, method: str, params: dict, expires_in: int) -> str:
        return self._client.generate_presigned_url(
            ClientMethod=method,
            Params={"Bucket": self.bucket, **params},
            ExpiresIn=expires_in,
        )

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        return self._presign("get_object", {"Key": path}, expires_in)

    def presign_put(
        self,
        path: str,
        expires_in: int = 3600,
        content_type: str = DEFAULT_CONTENT_TYPE,
    ) -> str:
        # The browser must send the same Content-Type it was signed for.
        return self._presign(
            "put_object", {"Key": path, "ContentType": content_type}, expires_in
        )

    def upload_bytes(
        self, path: str, data: bytes, content_type: str = DEFAULT_CONTENT_TYPE
    ) -> None:
        self._client.put_object(
            Bucket=self.bucket, Key=path, Body=data, ContentType=content_type
        )

    def get_bytes(self, path: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=path)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise FileNotFoundError(path) from e
            raise
        return response["Body"].read()
