"""
Demand Capacity Engine — model package.

``db`` is the shared Flask-SQLAlchemy instance; ORM tables live in
``app.models.tables`` and the immutable records the engine works on live in
``app.models.domain``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
