"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows every table before create_all() runs
  2. Other modules can import from cardapi.models directly
"""

from cardapi.models.user import User  # noqa: F401
from cardapi.models.card import Card  # noqa: F401
from cardapi.models.transaction import Transaction, TransactionStatus  # noqa: F401
