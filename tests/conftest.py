# -*- coding: utf-8 -*-
"""公共 fixture：内存数据库 + 内存对象存储."""

from __future__ import annotations

import io
from typing import Callable, Dict, List, Optional, Tuple

import pytest
from werkzeug.datastructures import FileStorage

from app import create_app
from controllers.attachment_controller import EXTENSION_KEY
from extensions.database import db
from utils.exceptions import StoreUnavailable


class InMemoryObjectStore:
    """对象存储替身，行为与 S3 一致：删除不存在的 key 不报错."""

    def __init__(self) -> None:
        self.objects: Dict[Tuple[str, str], Tuple[bytes, str]] = {}
        self.calls: List[Tuple[str, str]] = []
        self._failures: Dict[str, Callable[[str], bool]] = {}

    def fail(self, op: str, when: Optional[Callable[[str], bool]] = None) -> None:
        """让指定操作在 key 满足条件时抛出 StoreUnavailable."""
        self._failures[op] = when or (lambda key: True)

    def _check(self, op: str, key: str) -> None:
        self.calls.append((op, key))
        predicate = self._failures.get(op)
        if predicate is not None and predicate(key):
            raise StoreUnavailable(f"injected {op} failure: {key}")

    def put(self, bucket, key, body, access_policy):
        self._check("put", key)
        data = body if isinstance(body, (bytes, bytearray)) else body.read()
        self.objects[(bucket, key)] = (bytes(data), access_policy)

    def get(self, bucket, key):
        self._check("get", key)
        try:
            return self.objects[(bucket, key)][0]
        except KeyError:
            raise StoreUnavailable(f"no such key: {key}") from None

    def delete(self, bucket, key):
        self._check("delete", key)
        self.objects.pop((bucket, key), None)

    def exists(self, bucket, key):
        self._check("exists", key)
        return (bucket, key) in self.objects

    def keys(self) -> List[str]:
        return [key for _, key in self.objects]


@pytest.fixture()
def object_store():
    return InMemoryObjectStore()


@pytest.fixture()
def app(object_store):
    """测试用 Flask 应用上下文（内存数据库 + 内存对象存储）."""
    app = create_app("testing", object_store=object_store)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def coordinator(app):
    return app.extensions[EXTENSION_KEY]


@pytest.fixture()
def make_file():
    def _make(filename: str, content: bytes = b"payload") -> FileStorage:
        return FileStorage(stream=io.BytesIO(content), filename=filename)
    return _make
