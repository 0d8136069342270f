# -*- coding: utf-8 -*-
"""对象存储客户端.

附件的二进制内容存放在 S3 兼容的对象存储中，按 bucket + key 寻址。
客户端在进程启动时根据 :class:`StorageSettings` 构建一次，此后只读，
可以在多个请求之间并发复用。

所有 botocore 异常在这里统一转换为 :class:`utils.exceptions.StoreUnavailable`，
上层不需要感知 boto3 的异常体系。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import BinaryIO, Optional, Protocol, Union

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from utils.exceptions import StoreUnavailable


ACL_PUBLIC_READ = "public-read"
ACL_PRIVATE = "private"

# head_object 对不存在的对象返回的错误码
_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}

Body = Union[bytes, BinaryIO]


@dataclass(frozen=True)
class StorageSettings:
    access_key: Optional[str]
    secret_key: Optional[str]
    region: Optional[str]
    bucket: str
    endpoint_url: Optional[str] = None
    signature_version: str = "s3v4"
    addressing_style: str = "auto"
    public_read: bool = True

    @classmethod
    def from_config(cls, cfg) -> "StorageSettings":
        bucket = cfg.get("AWS_BUCKET_NAME")
        if not bucket:
            raise RuntimeError("AWS_BUCKET_NAME is not configured")
        return cls(
            access_key=cfg.get("AWS_ACCESS_KEY"),
            secret_key=cfg.get("AWS_SECRET_KEY"),
            region=cfg.get("AWS_REGION_NAME"),
            bucket=bucket,
            endpoint_url=cfg.get("AWS_ENDPOINT_URL") or None,
            signature_version=cfg.get("AWS_SIGNATURE_VERSION") or "s3v4",
            addressing_style=cfg.get("AWS_ADDRESSING_STYLE") or "auto",
            public_read=bool(cfg.get("ATTACHMENT_PUBLIC_READ", True)),
        )

    @property
    def access_policy(self) -> str:
        return ACL_PUBLIC_READ if self.public_read else ACL_PRIVATE


class ObjectStore(Protocol):
    """附件协调器所依赖的对象存储能力."""

    def put(self, bucket: str, key: str, body: Body, access_policy: str) -> None: ...

    def get(self, bucket: str, key: str) -> bytes: ...

    def delete(self, bucket: str, key: str) -> None: ...

    def exists(self, bucket: str, key: str) -> bool: ...


def create_s3_client(settings: StorageSettings):
    session = boto3.session.Session(
        aws_access_key_id=settings.access_key,
        aws_secret_access_key=settings.secret_key,
        region_name=settings.region,
    )

    cfg = Config(
        signature_version=settings.signature_version,
        s3={"addressing_style": settings.addressing_style},
    )

    return session.client("s3", endpoint_url=settings.endpoint_url, config=cfg)


class S3ObjectStore:
    """基于 boto3 的 :class:`ObjectStore` 实现."""

    def __init__(self, client) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, settings: StorageSettings) -> "S3ObjectStore":
        return cls(create_s3_client(settings))

    def put(self, bucket: str, key: str, body: Body, access_policy: str) -> None:
        try:
            self._client.put_object(Bucket=bucket, Key=key, Body=body, ACL=access_policy)
        except (ClientError, BotoCoreError) as exc:
            raise StoreUnavailable(f"对象上传失败: {key}") from exc

    def get(self, bucket: str, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()
        except (ClientError, BotoCoreError) as exc:
            raise StoreUnavailable(f"对象读取失败: {key}") from exc

    def delete(self, bucket: str, key: str) -> None:
        # S3 删除不存在的 key 同样返回成功
        try:
            self._client.delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise StoreUnavailable(f"对象删除失败: {key}") from exc

    def exists(self, bucket: str, key: str) -> bool:
        try:
            self._client.head_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                return False
            raise StoreUnavailable(f"对象状态查询失败: {key}") from exc
        except BotoCoreError as exc:
            raise StoreUnavailable(f"对象状态查询失败: {key}") from exc
        return True


__all__ = [
    "ACL_PRIVATE",
    "ACL_PUBLIC_READ",
    "ObjectStore",
    "S3ObjectStore",
    "StorageSettings",
    "create_s3_client",
]
