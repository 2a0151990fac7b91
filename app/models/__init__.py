"""
QA Hub: SQLAlchemy models package.

``db`` is the shared Flask-SQLAlchemy handle; model modules import it from here.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
