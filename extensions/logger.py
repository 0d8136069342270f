# extensions/logger.py
"""日志初始化.

- 控制台 + app.log / error.log 滚动文件，JSON 或文本格式。
- 每个请求带 request_id（优先取请求头 X-Request-ID）。
- 附件上下文（attachment_id / owner_post_id / storage_key）通过 ``extra=`` 传入，
  两种格式都会输出。
- 协调器记录的一致性缺口（孤儿对象、孤儿元数据）单独写入 attachment_gaps.log，
  供离线对账使用。
"""
import os, sys, logging, json, uuid, time
from logging.handlers import RotatingFileHandler
from flask import g, has_request_context, request
from werkzeug.exceptions import HTTPException

_REQUEST_ID_KEY = "request_id"
_REQUEST_ID_HEADER = "X-Request-ID"

ATTACHMENT_FIELDS = ("attachment_id", "owner_post_id", "storage_key")
COORDINATOR_LOGGER = "services.attachment_coordinator"
GAP_LOG_FILE = "attachment_gaps.log"

_NOISY_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "botocore": logging.WARNING,
    "boto3": logging.WARNING,
    "urllib3": logging.WARNING,
    "werkzeug": logging.INFO,
}


def attachment_context(record) -> dict:
    return {field: getattr(record, field) for field in ATTACHMENT_FIELDS if hasattr(record, field)}


class JsonFormatter(logging.Formatter):
    def format(self, record):
        data = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", "-"),
            "msg": record.getMessage(),
            **attachment_context(record),
        }
        if record.exc_info:
            data["exc"] = self.formatException(record.exc_info)
        return json.dumps(data, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(
            "%(asctime)s | %(levelname)s | %(request_id)s | %(name)s | %(message)s",
            "%Y-%m-%d %H:%M:%S",
        )

    def format(self, record):
        line = super().format(record)
        context = attachment_context(record)
        if context:
            line += " | " + " ".join(f"{k}={v}" for k, v in context.items())
        return line


class RequestIdFilter(logging.Filter):
    def filter(self, record):
        record.request_id = getattr(g, _REQUEST_ID_KEY, "-") if has_request_context() else "-"
        return True


class ConsistencyGapFilter(logging.Filter):
    """只放行协调器记录的 WARNING 及以上日志."""

    def filter(self, record):
        return record.name == COORDINATOR_LOGGER and record.levelno >= logging.WARNING


def _build_handlers(cfg, level):
    log_dir = cfg["LOG_DIR"]
    os.makedirs(log_dir, exist_ok=True)
    fmt = JsonFormatter() if cfg["LOG_JSON"] else TextFormatter()

    def rotating(filename):
        return RotatingFileHandler(
            os.path.join(log_dir, filename),
            maxBytes=cfg["LOG_MAX_BYTES"],
            backupCount=cfg["LOG_BACKUP_COUNT"],
            encoding="utf-8",
        )

    specs = [
        (logging.StreamHandler(sys.stdout), level, None),
        (rotating("app.log"), level, None),
        (rotating("error.log"), logging.ERROR, None),
        (rotating(GAP_LOG_FILE), logging.WARNING, ConsistencyGapFilter()),
    ]
    handlers = []
    for handler, lvl, extra_filter in specs:
        handler.setLevel(lvl)
        handler.setFormatter(fmt)
        handler.addFilter(RequestIdFilter())
        if extra_filter is not None:
            handler.addFilter(extra_filter)
        handlers.append(handler)
    return handlers


def _configure_root(cfg):
    root = logging.getLogger()
    # 已有 handler（重复 create_app 或 pytest 接管）时不再添加
    if root.handlers:
        return

    level = getattr(logging, cfg["LOG_LEVEL"].upper(), logging.INFO)
    root.setLevel(level)
    for handler in _build_handlers(cfg, level):
        root.addHandler(handler)
    for name, lvl in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(lvl)


def init_logger(app):
    _configure_root(app.config)
    app.logger.info("Logger initialized")

    @app.before_request
    def _before():
        g._req_start = time.time()
        if not hasattr(g, _REQUEST_ID_KEY):
            setattr(g, _REQUEST_ID_KEY, request.headers.get(_REQUEST_ID_HEADER) or uuid.uuid4().hex)
        app.logger.info(f"REQ {request.method} {request.path} from {request.remote_addr}")

    @app.after_request
    def _after(resp):
        duration = (time.time() - getattr(g, "_req_start", time.time())) * 1000
        resp.headers.setdefault(_REQUEST_ID_HEADER, getattr(g, _REQUEST_ID_KEY, "-"))
        app.logger.info(f"RESP {request.method} {request.path} {resp.status_code} {duration:.1f}ms")
        return resp

    @app.errorhandler(Exception)
    def _err(e):
        from utils.exceptions import BizError
        from utils.response import json_response
        if isinstance(e, BizError):
            return json_response(code=e.code, message=e.message, data=e.data)
        if isinstance(e, HTTPException):
            return json_response(code=e.code, message=e.description)
        app.logger.exception("UNHANDLED EXCEPTION")
        return json_response(code=500, message="服务器内部错误")
