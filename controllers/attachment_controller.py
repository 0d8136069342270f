# -*- coding: utf-8 -*-
"""帖子附件接口."""

from __future__ import annotations

from flask import Blueprint, current_app, request

from services.attachment_coordinator import AttachmentCoordinator
from utils.exceptions import BizError
from utils.response import download_response, json_response


attachment_bp = Blueprint("attachment", __name__, url_prefix="/api")

EXTENSION_KEY = "attachment_coordinator"


@attachment_bp.errorhandler(BizError)
def _biz_error(e: BizError):
    return json_response(code=e.code, message=e.message, data=e.data), e.code


def _coordinator() -> AttachmentCoordinator:
    return current_app.extensions[EXTENSION_KEY]


@attachment_bp.post("/posts/<int:owner_post_id>/attachments")
def upload_attachments(owner_post_id: int):
    """上传一个或多个附件（multipart 字段 files），返回按顺序的附件 id."""
    files = request.files.getlist("files")
    if not files:
        return json_response(code=400, message="请选择要上传的文件")

    ids = _coordinator().upload_all(owner_post_id, files)
    return json_response(message="上传成功", data={"ids": ids})


@attachment_bp.get("/posts/<int:owner_post_id>/attachments")
def list_attachments(owner_post_id: int):
    items = _coordinator().list_by_owner(owner_post_id)
    return json_response(data={"items": [item.to_dict() for item in items], "total": len(items)})


@attachment_bp.delete("/posts/<int:owner_post_id>/attachments")
def delete_post_attachments(owner_post_id: int):
    deleted = _coordinator().delete_by_owner(owner_post_id)
    return json_response(message="删除成功", data={"deleted": deleted})


@attachment_bp.get("/attachments/<int:attachment_id>")
def download_attachment(attachment_id: int):
    """返回附件内容，文件名已做百分号编码."""
    content, display_name = _coordinator().fetch(attachment_id)
    return download_response(content, display_name)


@attachment_bp.delete("/attachments/<int:attachment_id>")
def delete_attachment(attachment_id: int):
    deleted_id = _coordinator().delete_one(attachment_id)
    return json_response(message="删除成功", data={"id": deleted_id})


@attachment_bp.post("/attachments/batch-delete")
def batch_delete_attachments():
    data = request.get_json(silent=True) or {}
    ids = data.get("ids")
    if not isinstance(ids, list) or not all(isinstance(i, int) and not isinstance(i, bool) for i in ids):
        return json_response(code=400, message="ids 必须为整数数组")

    deleted = _coordinator().delete_by_ids(ids)
    return json_response(message="删除成功", data={"deleted": deleted})


@attachment_bp.get("/attachments/exists")
def attachment_exists():
    storage_key = request.args.get("key") or ""
    if not storage_key:
        return json_response(code=400, message="key 不能为空")
    return json_response(data={"key": storage_key, "exists": _coordinator().exists(storage_key)})
