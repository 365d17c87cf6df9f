from sqlalchemy import Column, BigInteger, Boolean
from .base import Base


class ControlEntry(Base):
    """
    Block number suspected of wrong internal transaction collation.

    Rows are created outside of this project. `corrected` is NULL or false
    while pending and true once the block has been invalidated.
    """

    __tablename__ = "blocks_to_invalidate_wrong_int_txs_collation"

    block_number = Column(BigInteger, nullable=False)
    corrected = Column("refetched", Boolean, nullable=True)

    # The table has no primary key in the database
    __mapper_args__ = {"primary_key": [block_number]}
