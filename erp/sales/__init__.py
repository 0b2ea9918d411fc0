"""
erp/sales/__init__.py
---------------------
Point-of-sale blueprint: session cart, pricing and sale submission.
URL prefix: /sales
"""
from flask import Blueprint

sales = Blueprint('sales', __name__)

from erp.sales import routes  # noqa: E402, F401
from erp.sales import models  # noqa: E402, F401  — registers Sale/SaleItem with SQLAlchemy
