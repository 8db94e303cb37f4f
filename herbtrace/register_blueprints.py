"""
Centralized Blueprint Registration
All blueprints MUST be registered inside register_all_blueprints(app)
"""

import logging


def register_all_blueprints(app):

    # Tracking pages (what printed labels point at)
    from herbtrace.routes.tracking.track_routes import track_bp
    app.register_blueprint(track_bp)

    # QR
    from herbtrace.routes.qr.qr_routes import qr_bp
    app.register_blueprint(qr_bp)

    logging.getLogger(__name__).info("blueprints registered")
