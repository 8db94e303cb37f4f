# app.py (public tracking pages)

from flask import Flask
from flask_cors import CORS

from herbtrace.app_config import configure_logging, load_config, load_settings
from herbtrace.bootstrap import build_context, init_ledger
from herbtrace.register_blueprints import register_all_blueprints


def create_app(context=None):
    settings = context.settings if context else load_settings()
    configure_logging(settings.log_level)

    app = Flask(__name__)

    # -------------------------
    # Config
    # -------------------------
    load_config(app, settings)
    app.json.ensure_ascii = False

    CORS(app, resources={r"/*": {"origins": "*"}})

    # -------------------------
    # Ledger (Mongo or in-memory, see DISABLE_MONGO)
    # -------------------------
    init_ledger(app, context or build_context(settings))

    # -------------------------
    # Blueprints
    # -------------------------
    register_all_blueprints(app)

    @app.get("/_health")
    def _health():
        return {"ok": True, "service": "herbtrace-track"}

    return app


# Local run only
if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=5000, debug=True)
