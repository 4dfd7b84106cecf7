# Overview: Flask extension instances for database, migrations, and the live session feed.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .services.session_feed import SessionFeed

db = SQLAlchemy()
migrate = Migrate()
session_feed = SessionFeed()
