import os
from flask import Flask


def create_app():
    """Build the Flask app; RESCORE_ON_STARTUP=1 re-scores every stored race before serving."""
    app = Flask(__name__)

    db_url = os.environ.get("DATABASE_URL")
    if not db_url:
        raise RuntimeError(
            "DATABASE_URL is required. Results and standings are stored in PostgreSQL."
        )

    # Initialize connection pool early (optional; direct connect works if pool init fails)
    try:
        from . import datastore_pg as _pg
        try:
            minconn = int(os.environ.get("DB_POOL_MIN", "1"))
        except ValueError:
            minconn = 1
        try:
            maxconn = int(os.environ.get("DB_POOL_MAX", "10"))
        except ValueError:
            maxconn = 10
        _pg.init_pool(minconn=minconn, maxconn=maxconn)
    except Exception:  # pylint: disable=broad-except
        app.logger.exception("PostgreSQL pool initialization failed; continuing without pool")

    from . import routes
    app.register_blueprint(routes.bp)

    if os.environ.get("RESCORE_ON_STARTUP", "0").lower() in ("1", "true", "yes"):
        app.logger.info("Rescoring stored race results")
        try:
            count = routes.rescore_all_races()
            app.logger.info("Rescored %d races", count)
        except Exception:  # pylint: disable=broad-except
            app.logger.exception("Error rescoring race results")

    return app


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    create_app().run(host='0.0.0.0', port=port)
