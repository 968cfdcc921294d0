from sqlalchemy import JSON, BigInteger, Integer
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

# BIGSERIAL on Postgres; SQLite only autoincrements INTEGER PRIMARY KEY
BigIntPK = BigInteger().with_variant(Integer, "sqlite")

JSONDoc = JSON().with_variant(JSONB(), "postgresql")

FID_LENGTH = 32


class Base(DeclarativeBase):
    pass
