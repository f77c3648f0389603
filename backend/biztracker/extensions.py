# Overview: Flask extension instances for the database engine and migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# One engine (and connection pool) per process, bound in create_app().
db = SQLAlchemy()
migrate = Migrate()
