from __future__ import annotations

from contextlib import contextmanager
from typing import Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from extensions.database import db
from models.attachment import Attachment
from utils.exceptions import PersistenceFailure


@contextmanager
def _translate_errors(action: str):
    try:
        yield
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceFailure(f"附件元数据{action}失败") from exc


class AttachmentRepository:
    """附件元数据的持久化操作。

    仓储层只负责数据库中的记录（原始文件名、storage_key、所属帖子），
    不接触对象存储。写操作只 flush 不提交，事务边界由调用方通过
    :meth:`commit` / :meth:`rollback` 控制；所有 SQLAlchemy 异常在回滚后
    转换为 :class:`PersistenceFailure`。"""

    @staticmethod
    def create(*, storage_key: str, user_file_name: str, owner_post_id: int) -> Attachment:
        attachment = Attachment(
            storage_key=storage_key,
            user_file_name=user_file_name,
            owner_post_id=owner_post_id,
        )
        with _translate_errors("写入"):
            db.session.add(attachment)
            db.session.flush()
        return attachment

    @staticmethod
    def get_by_id(attachment_id: int) -> Optional[Attachment]:
        with _translate_errors("查询"):
            return db.session.get(Attachment, attachment_id)

    @staticmethod
    def find_by_owner(owner_post_id: int) -> List[Attachment]:
        stmt = (
            select(Attachment)
            .where(Attachment.owner_post_id == owner_post_id)
            .order_by(Attachment.id)
        )
        with _translate_errors("查询"):
            return list(db.session.execute(stmt).scalars().all())

    @staticmethod
    def find_all_by_ids(attachment_ids: Iterable[int]) -> List[Attachment]:
        ids = list(attachment_ids)
        if not ids:
            return []
        stmt = select(Attachment).where(Attachment.id.in_(ids)).order_by(Attachment.id)
        with _translate_errors("查询"):
            return list(db.session.execute(stmt).scalars().all())

    @staticmethod
    def delete(attachment: Attachment) -> None:
        with _translate_errors("删除"):
            db.session.delete(attachment)
            db.session.flush()

    @staticmethod
    def delete_all(attachment_ids: Iterable[int]) -> int:
        """单条 DELETE 语句按 id 批量删除，返回实际删除的行数."""
        ids = list(attachment_ids)
        if not ids:
            return 0
        stmt = delete(Attachment).where(Attachment.id.in_(ids))
        with _translate_errors("批量删除"):
            result = db.session.execute(stmt, execution_options={"synchronize_session": False})
            return result.rowcount or 0

    @staticmethod
    def commit():
        with _translate_errors("提交"):
            db.session.commit()

    @staticmethod
    def rollback():
        db.session.rollback()
