# app.py
from flask import Flask
from config.settings import get_config
from extensions.database import db, migrate
from extensions.logger import init_logger
from extensions.object_storage import S3ObjectStore, StorageSettings
from controllers.attachment_controller import attachment_bp, EXTENSION_KEY
from services.attachment_coordinator import AttachmentCoordinator
from utils.response import json_response
import models  # noqa: F401  注册模型供 Flask-Migrate 检测


def create_app(config_name="development", object_store=None):
    app = Flask(__name__)
    app.config.from_object(get_config(config_name))

    # 初始化扩展
    db.init_app(app)
    migrate.init_app(app, db)
    init_logger(app)

    # 对象存储：启动时按配置构建一次，之后只读共享
    settings = StorageSettings.from_config(app.config)
    if object_store is None:
        object_store = S3ObjectStore.from_settings(settings)
    app.extensions[EXTENSION_KEY] = AttachmentCoordinator.from_settings(settings, object_store)
    app.logger.info(
        f"attachment storage ready: bucket={settings.bucket} region={settings.region} "
        f"policy={settings.access_policy}"
    )

    # 附件
    app.register_blueprint(attachment_bp)

    # 错误处理
    @app.errorhandler(404)
    def not_found(e):
        return json_response(message="接口不存在", code=404)

    @app.errorhandler(405)
    def method_not_allowed(e):
        return json_response(message="请求方法不允许", code=405)

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(host="0.0.0.0", port=8888, debug=True)
