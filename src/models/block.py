from sqlalchemy import Column, BigInteger, Boolean, DateTime, LargeBinary
from .base import Base


class Block(Base):
    """Block row owned by the chain indexer; only `consensus` is written here"""

    __tablename__ = "blocks"

    hash = Column(LargeBinary, primary_key=True)
    number = Column(BigInteger, nullable=False, index=True)
    parent_hash = Column(LargeBinary, nullable=True)
    consensus = Column(Boolean, nullable=False)
    timestamp = Column(DateTime, nullable=True)
