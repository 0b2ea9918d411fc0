"""
erp/catalog/__init__.py
-----------------------
Catalog blueprint: products, packaging and variation authoring.
URL prefix: /catalog
"""
from flask import Blueprint

catalog = Blueprint('catalog', __name__)

from erp.catalog import routes  # noqa: E402, F401
from erp.catalog import models  # noqa: E402, F401  — registers catalog tables with SQLAlchemy
