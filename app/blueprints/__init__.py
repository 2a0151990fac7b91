"""
QA Hub
Blueprint registry.
"""


def register_blueprints(app):
    """Attach every API blueprint to the app."""
    from app.blueprints.execution_bp import execution_bp
    from app.blueprints.health_bp import health_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(execution_bp)
