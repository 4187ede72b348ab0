# Overview: Flask extension instances for the database and the live record store.

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
