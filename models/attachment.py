# -*- coding: utf-8 -*-
"""
attachment.py
--------------------------------------------------------------------
帖子附件元数据：
- 文件内容存放在对象存储中，本表只记录指向对象的 storage_key。
- storage_key = 随机 UUID + "_" + 原始文件名，全局唯一且永不复用。
- user_file_name 为上传时的原始文件名，仅用于展示，可重复、可含任意字符。
- owner_post_id 指向所属帖子，本模块不校验帖子是否存在。
约束：
- 一条记录对应对象存储中恰好一个对象；对象与记录由 AttachmentCoordinator
  成对创建、成对删除，其他代码不直接改动任何一侧。
"""


from extensions.database import db
from .mixins import TimestampMixin, COMMON_TABLE_ARGS


class Attachment(TimestampMixin, db.Model):
    __tablename__ = "attachment"
    __table_args__ = (
        db.Index("ix_attachment_owner_post", "owner_post_id"),
        COMMON_TABLE_ARGS,
    )

    id = db.Column(db.Integer, primary_key=True)
    storage_key = db.Column(db.String(512), nullable=False, unique=True)
    user_file_name = db.Column(db.String(255), nullable=False)
    owner_post_id = db.Column(db.Integer, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "storage_key": self.storage_key,
            "user_file_name": self.user_file_name,
            "owner_post_id": self.owner_post_id,
            "uploaded_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Attachment id={self.id} key={self.storage_key!r}>"
