"""Database and migration extensions shared by the app, the CLI and the worker."""

from pathlib import Path

from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

# Services return ORM rows after commit, so keep their state loaded.
db = SQLAlchemy(session_options={"expire_on_commit": False})
migrate = Migrate(compare_type=True)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def init_extensions(app) -> None:
    db.init_app(app)
    migrate.init_app(app, db, directory=str(MIGRATIONS_DIR))
