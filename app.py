# app.py
import logging

from flask import Flask
from config.settings import get_config
from extensions.database import db, migrate
from extensions.event_bus import event_bus, socketio
from extensions.logger import init_logger
from controllers.forum_controller import forum_bp
from utils.response import error_response, json_response
from utils.exceptions import BizError

import models  # noqa: F401  注册全部模型，供 Flask-Migrate 检测

logger = logging.getLogger(__name__)


def create_app(config_name="development"):
    app = Flask(__name__)
    app.config.from_object(get_config(config_name))

    # 初始化扩展
    db.init_app(app)
    migrate.init_app(app, db)
    init_logger(app)
    event_bus.init_app(app)
    logger.info("当前数据库 URI: %s", app.config["SQLALCHEMY_DATABASE_URI"])

    # 论坛
    app.register_blueprint(forum_bp)

    # 错误处理
    @app.errorhandler(404)
    def not_found(e):
        return json_response(message="接口不存在", code=404)

    @app.errorhandler(500)
    def server_error(e):
        return json_response(message="服务器内部错误", code=500)

    @app.errorhandler(BizError)
    def _biz_err(e: BizError):
        return error_response(e)

    return app


if __name__ == "__main__":
    app = create_app()
    socketio.run(app, host="0.0.0.0", port=8888, debug=True)
