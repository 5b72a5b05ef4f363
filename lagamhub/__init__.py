import os
from pathlib import Path

from flask import Flask, jsonify
from supabase import create_client
from werkzeug.exceptions import HTTPException

from .auth.routes import auth_bp
from .main.routes import main_bp
from .store import JsonRecordStore, SupabaseRecordStore


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.update(
        SECRET_KEY=os.environ.get("SECRET_KEY"),
        RECORD_STORE_BACKEND=os.environ.get("RECORD_STORE", "json"),
        DATA_DIR=os.environ.get("DATA_DIR"),
        SUPABASE_URL=os.environ.get("SUPABASE_URL"),
        SUPABASE_SERVICE_KEY=os.environ.get("SUPABASE_SERVICE_KEY"),
        LOG_LEVEL=os.environ.get("LOG_LEVEL", "INFO"),
    )
    if test_config:
        app.config.update(test_config)

    app.secret_key = app.config["SECRET_KEY"] or os.environ["SECRET_KEY"]
    app.logger.setLevel(str(app.config["LOG_LEVEL"]).upper())

    backend = str(app.config["RECORD_STORE_BACKEND"] or "json").lower()
    if backend == "supabase":
        supabase = create_client(
            app.config["SUPABASE_URL"],
            app.config["SUPABASE_SERVICE_KEY"],
        )
        app.config["SUPABASE"] = supabase
        app.config["RECORD_STORE"] = SupabaseRecordStore(supabase)
    else:
        if backend != "json":
            app.logger.warning("Unknown RECORD_STORE %r; falling back to json", backend)
        data_dir = app.config["DATA_DIR"] or Path(app.instance_path) / "db"
        app.config["RECORD_STORE"] = JsonRecordStore(data_dir)

    app.register_blueprint(auth_bp)
    app.register_blueprint(main_bp)

    @app.errorhandler(HTTPException)
    def json_error(exc: HTTPException):
        response = jsonify({"message": exc.description})
        response.status_code = exc.code or 500
        return response

    return app
