"""
Project Stage Review Platform
SQLAlchemy database handle shared by every model module.

Usage:
    from app.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
