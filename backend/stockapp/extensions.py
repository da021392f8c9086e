# Overview: Flask extension instances for the store database and its migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()

# SQLite cannot ALTER constraints in place; autogenerate batch operations
migrate = Migrate(render_as_batch=True)
