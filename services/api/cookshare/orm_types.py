# cookshare/orm_types.py
from sqlalchemy import String
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.types import JSON


def TagList():
    """Platform-independent list of short strings.

    - PostgreSQL: VARCHAR(80)[]
    - Anything else (SQLite in tests): JSON array
    """
    return JSON().with_variant(ARRAY(String(80)), "postgresql")
