"""Storage strategy over S3 buckets."""

from collections.abc import Callable, Iterable
from typing import Any, Optional, TypeVar

from botocore.exceptions import ClientError

from pyclouds.domain.base.payload import ContentMetadata, Payload
from pyclouds.domain.base.ports.storage_port import LocalStorageStrategy
from pyclouds.domain.blobstore.exceptions import ContainerNotFoundError, KeyNotFoundError
from pyclouds.domain.blobstore.models import (
    Blob,
    BlobAccess,
    BlobMetadata,
    ContainerAccess,
    ListContainerOptions,
    StorageMetadata,
    StorageType,
)
from pyclouds.infrastructure.logging.logger import get_logger
from pyclouds.infrastructure.storage.transient import matches_options, store_payload
from pyclouds.providers.aws.aws_client import AWSClient
from pyclouds.providers.aws.exceptions import convert_client_error, error_code, status_code

logger = get_logger(__name__)

T = TypeVar("T")

ALL_USERS = "http://acs.amazonaws.com/groups/global/AllUsers"
DELETE_BATCH = 1000

_NO_BUCKET = frozenset({"NoSuchBucket", "404", "NotFound"})
_NO_KEY = frozenset({"NoSuchKey", "404", "NotFound"})


def _strip_etag(etag: Optional[str]) -> Optional[str]:
    return etag.strip('"') if etag else etag


class S3StorageStrategy(LocalStorageStrategy):
    """Buckets are containers and objects are blobs."""

    def __init__(self, aws_client: AWSClient, default_location: Optional[str] = None) -> None:
        self.aws_client = aws_client
        self.default_location = default_location or aws_client.region_name

    @property
    def _s3(self) -> Any:
        return self.aws_client.s3_client

    def _call(self, operation_name: str, func: Callable[..., T], **kwargs: Any) -> T:
        try:
            return func(**kwargs)
        except ClientError as e:
            if error_code(e) == "NoSuchBucket" and "Bucket" in kwargs:
                raise ContainerNotFoundError(kwargs["Bucket"]) from e
            raise convert_client_error(e, operation_name)

    # containers

    def container_exists(self, container: str) -> bool:
        try:
            self._s3.head_bucket(Bucket=container)
        except ClientError as e:
            if error_code(e) in _NO_BUCKET or status_code(e) == 404:
                return False
            raise convert_client_error(e, "head_bucket")
        return True

    def get_all_container_names(self) -> Iterable[str]:
        response = self._call("list_buckets", self._s3.list_buckets)
        return sorted(b["Name"] for b in response.get("Buckets", []))

    def create_container(
        self, container: str, location: Optional[str] = None, public_read: bool = False
    ) -> bool:
        region = location or self.default_location
        params: dict[str, Any] = {"Bucket": container}
        if region and region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": region}
        try:
            self._s3.create_bucket(**params)
        except ClientError as e:
            if error_code(e) == "BucketAlreadyOwnedByYou":
                return False
            raise convert_client_error(e, "create_bucket")
        if public_read:
            self._call("put_bucket_acl", self._s3.put_bucket_acl, Bucket=container, ACL="public-read")
        logger.debug("Created bucket %s in %s", container, region)
        return True

    def delete_container(self, container: str) -> None:
        if not self.container_exists(container):
            return
        self._delete_keys(container, list(self.get_blob_keys_inside_container(container)))
        self._call("delete_bucket", self._s3.delete_bucket, Bucket=container)

    def clear_container(
        self, container: str, options: Optional[ListContainerOptions] = None
    ) -> None:
        options = options or ListContainerOptions(recursive=True)
        keys = [
            k
            for k in self.get_blob_keys_inside_container(container)
            if matches_options(k, options, self.get_separator())
        ]
        self._delete_keys(container, keys)

    def _delete_keys(self, container: str, keys: list[str]) -> None:
        for start in range(0, len(keys), DELETE_BATCH):
            batch = keys[start : start + DELETE_BATCH]
            self._call(
                "delete_objects",
                self._s3.delete_objects,
                Bucket=container,
                Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
            )

    def get_container_metadata(self, container: str) -> Optional[StorageMetadata]:
        response = self._call("list_buckets", self._s3.list_buckets)
        for bucket in response.get("Buckets", []):
            if bucket["Name"] != container:
                continue
            location = self._call(
                "get_bucket_location", self._s3.get_bucket_location, Bucket=container
            ).get("LocationConstraint")
            return StorageMetadata(
                type=StorageType.CONTAINER,
                name=container,
                location=location or "us-east-1",
                creation_date=bucket.get("CreationDate"),
            )
        return None

    def get_container_access(self, container: str) -> ContainerAccess:
        acl = self._call("get_bucket_acl", self._s3.get_bucket_acl, Bucket=container)
        return ContainerAccess.PUBLIC_READ if self._grants_public_read(acl) else ContainerAccess.PRIVATE

    def set_container_access(self, container: str, access: ContainerAccess) -> None:
        acl = "public-read" if access == ContainerAccess.PUBLIC_READ else "private"
        self._call("put_bucket_acl", self._s3.put_bucket_acl, Bucket=container, ACL=acl)

    @staticmethod
    def _grants_public_read(acl: dict[str, Any]) -> bool:
        for grant in acl.get("Grants", []):
            grantee = grant.get("Grantee", {})
            if grantee.get("URI") == ALL_USERS and grant.get("Permission") in ("READ", "FULL_CONTROL"):
                return True
        return False

    # blobs

    def blob_exists(self, container: str, key: str) -> bool:
        try:
            self._s3.head_object(Bucket=container, Key=key)
        except ClientError as e:
            if error_code(e) in _NO_KEY or status_code(e) == 404:
                return False
            raise convert_client_error(e, "head_object")
        return True

    def get_blob_keys_inside_container(self, container: str) -> Iterable[str]:
        keys: list[str] = []
        paginator = self._s3.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=container):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
        except ClientError as e:
            if error_code(e) == "NoSuchBucket":
                raise ContainerNotFoundError(container) from e
            raise convert_client_error(e, "list_objects_v2")
        return keys

    def get_blob(self, container: str, key: str) -> Optional[Blob]:
        try:
            response = self._s3.get_object(Bucket=container, Key=key)
        except ClientError as e:
            if error_code(e) in _NO_KEY:
                return None
            if error_code(e) == "NoSuchBucket":
                raise ContainerNotFoundError(container) from e
            raise convert_client_error(e, "get_object")

        body = response["Body"]
        try:
            data = body.read()
        finally:
            body.close()
        etag = _strip_etag(response.get("ETag"))
        content = ContentMetadata(
            content_type=response.get("ContentType"),
            content_length=len(data),
            content_md5=etag if etag and "-" not in etag else None,
            content_encoding=response.get("ContentEncoding"),
            content_disposition=response.get("ContentDisposition"),
            content_language=response.get("ContentLanguage"),
            cache_control=response.get("CacheControl"),
        )
        metadata = BlobMetadata(
            name=key,
            container=container,
            type=StorageType.FOLDER if key.endswith("/") and not data else StorageType.BLOB,
            uri=f"s3://{container}/{key}",
            etag=etag,
            last_modified=response.get("LastModified"),
            size=len(data),
            user_metadata=dict(response.get("Metadata", {})),
            content_metadata=content,
        )
        return Blob(metadata=metadata, payload=Payload(data, content.model_copy()))

    def put_blob(self, container: str, blob: Blob) -> str:
        data, md5 = store_payload(blob)
        content = blob.metadata.content_metadata
        if blob.payload is not None and blob.payload.metadata.content_type:
            content = blob.payload.metadata
        params: dict[str, Any] = {
            "Bucket": container,
            "Key": blob.name,
            "Body": data,
            "Metadata": dict(blob.metadata.user_metadata),
        }
        for field, param in (
            ("content_type", "ContentType"),
            ("content_encoding", "ContentEncoding"),
            ("content_disposition", "ContentDisposition"),
            ("content_language", "ContentLanguage"),
            ("cache_control", "CacheControl"),
        ):
            value = getattr(content, field) or getattr(blob.metadata.content_metadata, field)
            if value:
                params[param] = value
        response = self._call("put_object", self._s3.put_object, **params)
        return _strip_etag(response.get("ETag")) or md5

    def remove_blob(self, container: str, key: str) -> None:
        try:
            self._s3.delete_object(Bucket=container, Key=key)
        except ClientError as e:
            if error_code(e) in _NO_BUCKET | _NO_KEY:
                return
            raise convert_client_error(e, "delete_object")

    def get_blob_access(self, container: str, key: str) -> BlobAccess:
        acl = self._blob_acl(container, key)
        return BlobAccess.PUBLIC_READ if self._grants_public_read(acl) else BlobAccess.PRIVATE

    def _blob_acl(self, container: str, key: str) -> dict[str, Any]:
        try:
            return self._s3.get_object_acl(Bucket=container, Key=key)
        except ClientError as e:
            if error_code(e) == "NoSuchBucket":
                raise ContainerNotFoundError(container) from e
            if error_code(e) in _NO_KEY:
                raise KeyNotFoundError(container, key) from e
            raise convert_client_error(e, "get_object_acl")

    def set_blob_access(self, container: str, key: str, access: BlobAccess) -> None:
        acl = "public-read" if access == BlobAccess.PUBLIC_READ else "private"
        self._call("put_object_acl", self._s3.put_object_acl, Bucket=container, Key=key, ACL=acl)

