# -*- coding: utf-8 -*-
"""帖子附件的上传、读取与删除协调.

附件由两部分组成：对象存储里的二进制对象，以及数据库里的元数据记录。
两边各自独立失败，这里只靠调用顺序把它们串起来，不做分布式事务：

- 上传：先写对象，再写元数据。元数据写入失败时对象成为孤儿对象，记 WARNING，不重试。
- 删除：先查元数据，再删对象，最后删元数据。元数据删除失败时记录指向已删除的对象，同样记 WARNING。

批量上传只对元数据开一个事务；批量删除逐条提交，中途失败时已删除的条目保持删除。
"""

from __future__ import annotations

import logging
import uuid
from typing import Iterable, List, NamedTuple, Sequence
from urllib.parse import quote

from extensions.object_storage import ObjectStore, StorageSettings
from models.attachment import Attachment
from repositories.attachment_repository import AttachmentRepository
from utils.exceptions import BizError, NotFound, PersistenceFailure, StoreUnavailable

logger = logging.getLogger(__name__)

MAX_FILE_NAME_LENGTH = 255


class FetchedAttachment(NamedTuple):
    content: bytes
    display_name: str


def generate_storage_key(user_file_name: str) -> str:
    """随机 UUID（uuid4，122 位随机）+ "_" + 原始文件名."""
    return f"{uuid.uuid4()}_{user_file_name}"


def encode_display_name(user_file_name: str) -> str:
    """UTF-8 百分号编码，与 URLEncoder 一致：空格为 %20，保留 *，转义 ~."""
    return quote(user_file_name, safe="*", encoding="utf-8").replace("~", "%7E")


def _original_name(file) -> str:
    name = getattr(file, "filename", None)
    if not name:
        raise BizError("附件文件名不能为空")
    if len(name) > MAX_FILE_NAME_LENGTH:
        raise BizError(f"附件文件名不能超过 {MAX_FILE_NAME_LENGTH} 个字符")
    return name


def _merge_data(exc: BizError, **extra) -> None:
    exc.data = {**(exc.data if isinstance(exc.data, dict) else {}), **extra}


class AttachmentCoordinator:
    """驱动附件对象与元数据的成对生命周期.

    :param object_store: 对象存储客户端，进程启动时构建一次，只读共享。
    :param bucket: 附件所在 bucket。
    :param access_policy: 上传对象使用的 canned ACL（``public-read`` 或 ``private``）。
    """

    def __init__(
        self,
        object_store: ObjectStore,
        bucket: str,
        *,
        access_policy: str = "public-read",
        repository=AttachmentRepository,
        key_factory=generate_storage_key,
    ) -> None:
        self._store = object_store
        self._bucket = bucket
        self._access_policy = access_policy
        self._repo = repository
        self._key_factory = key_factory

    @classmethod
    def from_settings(cls, settings: StorageSettings, object_store: ObjectStore) -> "AttachmentCoordinator":
        return cls(object_store, settings.bucket, access_policy=settings.access_policy)

    @property
    def bucket(self) -> str:
        return self._bucket

    # ------------------------------------------------------------------ 上传

    def upload(self, owner_post_id: int, file) -> int:
        user_file_name = _original_name(file)
        storage_key = self._put_object(owner_post_id, user_file_name, file)
        try:
            attachment = self._repo.create(
                storage_key=storage_key,
                user_file_name=user_file_name,
                owner_post_id=owner_post_id,
            )
            self._repo.commit()
        except PersistenceFailure as exc:
            logger.warning(
                "metadata insert failed, object %s is orphaned",
                storage_key,
                extra={"owner_post_id": owner_post_id, "storage_key": storage_key},
            )
            _merge_data(exc, orphan_keys=[storage_key])
            raise

        logger.info(
            "attachment %s uploaded as %s",
            attachment.id,
            storage_key,
            extra={"attachment_id": attachment.id, "owner_post_id": owner_post_id},
        )
        return attachment.id

    def upload_all(self, owner_post_id: int, files: Iterable) -> List[int]:
        """按输入顺序上传多个文件，返回对应的附件 id.

        元数据在一个事务中写入，任何一个文件失败整批失败且不留下元数据；
        已写入的对象不会回滚，它们的 key 记录在日志和异常的 ``data["orphan_keys"]`` 中。
        """
        files = list(files)
        names = [_original_name(file) for file in files]

        written: List[str] = []
        attachments: List[Attachment] = []
        try:
            for file, user_file_name in zip(files, names):
                storage_key = self._put_object(owner_post_id, user_file_name, file)
                written.append(storage_key)
                attachments.append(
                    self._repo.create(
                        storage_key=storage_key,
                        user_file_name=user_file_name,
                        owner_post_id=owner_post_id,
                    )
                )
            self._repo.commit()
        except Exception as exc:
            self._repo.rollback()
            if written:
                logger.warning(
                    "batch upload failed after %d of %d files, objects left without metadata: %s",
                    len(written),
                    len(files),
                    ", ".join(written),
                    extra={"owner_post_id": owner_post_id},
                )
            if isinstance(exc, BizError):
                _merge_data(exc, orphan_keys=written)
            raise

        ids = [attachment.id for attachment in attachments]
        logger.info(
            "uploaded %d attachments for post %s",
            len(ids),
            owner_post_id,
            extra={"owner_post_id": owner_post_id},
        )
        return ids

    def _put_object(self, owner_post_id: int, user_file_name: str, file) -> str:
        storage_key = self._key_factory(user_file_name)
        body = getattr(file, "stream", file)
        self._store.put(self._bucket, storage_key, body, self._access_policy)
        logger.debug(
            "object written",
            extra={"owner_post_id": owner_post_id, "storage_key": storage_key},
        )
        return storage_key

    # ------------------------------------------------------------------ 读取

    def fetch(self, attachment_id: int) -> FetchedAttachment:
        attachment = self._require(attachment_id)
        storage_key = attachment.storage_key
        display_name = encode_display_name(attachment.user_file_name)
        try:
            content = self._store.get(self._bucket, storage_key)
        except StoreUnavailable:
            logger.warning(
                "attachment %s has metadata but its object could not be read",
                attachment_id,
                extra={"attachment_id": attachment_id, "storage_key": storage_key},
            )
            raise
        return FetchedAttachment(content, display_name)

    def list_by_owner(self, owner_post_id: int) -> List[Attachment]:
        return self._repo.find_by_owner(owner_post_id)

    def exists(self, storage_key: str) -> bool:
        """直接探测对象存储，不查询元数据."""
        return self._store.exists(self._bucket, storage_key)

    # ------------------------------------------------------------------ 删除

    def delete_one(self, attachment_id: int) -> int:
        attachment = self._require(attachment_id)
        self._delete_pair(attachment_id, attachment.storage_key, attachment)
        return attachment_id

    def delete_by_owner(self, owner_post_id: int) -> int:
        return self.delete_many(self._repo.find_by_owner(owner_post_id))

    def delete_by_ids(self, attachment_ids: Iterable[int]) -> int:
        ids = list(attachment_ids)
        if not ids:
            return 0
        return self.delete_many(self._repo.find_all_by_ids(ids))

    def delete_many(self, attachments: Sequence[Attachment]) -> int:
        """逐条删除对象与元数据，最后再按全部 id 发一条批量 DELETE.

        每条记录单独提交，因此可能部分成功：中途失败时异常直接抛出，
        已处理的 id 放在异常的 ``data["deleted_ids"]`` 中，已删除的不会恢复。
        """
        targets = [(a.id, a.storage_key, a) for a in attachments]
        if not targets:
            return 0

        deleted_ids: List[int] = []
        try:
            for attachment_id, storage_key, attachment in targets:
                self._delete_pair(attachment_id, storage_key, attachment)
                deleted_ids.append(attachment_id)
        except BizError as exc:
            logger.warning(
                "batch delete stopped after %d of %d attachments",
                len(deleted_ids),
                len(targets),
            )
            _merge_data(exc, deleted_ids=deleted_ids)
            raise

        self._repo.delete_all([attachment_id for attachment_id, _, _ in targets])
        self._repo.commit()
        return len(deleted_ids)

    def _delete_pair(self, attachment_id: int, storage_key: str, attachment: Attachment) -> None:
        self._store.delete(self._bucket, storage_key)
        try:
            self._repo.delete(attachment)
            self._repo.commit()
        except PersistenceFailure:
            logger.warning(
                "object %s deleted but metadata %s remains",
                storage_key,
                attachment_id,
                extra={"attachment_id": attachment_id, "storage_key": storage_key},
            )
            raise
        logger.info(
            "attachment %s deleted",
            attachment_id,
            extra={"attachment_id": attachment_id, "storage_key": storage_key},
        )

    def _require(self, attachment_id: int) -> Attachment:
        attachment = self._repo.get_by_id(attachment_id)
        if attachment is None:
            raise NotFound(f"附件不存在: {attachment_id}")
        return attachment


__all__ = [
    "AttachmentCoordinator",
    "FetchedAttachment",
    "encode_display_name",
    "generate_storage_key",
]
