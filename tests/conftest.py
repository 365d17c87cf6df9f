import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.models.base import Base
from src.models.block import Block
from src.models.control_entry import ControlEntry


@pytest.fixture(autouse=True, scope="session")
def configure_logging():
    import logging
    import structlog

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(),
    )

    root_logger = logging.getLogger()
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def block_hash(number: int, fork: int = 0) -> bytes:
    return bytes([fork]) + number.to_bytes(31, "big")


@pytest.fixture
def seed(session_factory):
    """Insert blocks and control entries, committing immediately"""

    def _seed(blocks=(), entries=()):
        with session_factory() as db:
            for number, consensus, *fork in blocks:
                db.add(
                    Block(hash=block_hash(number, *fork), number=number, consensus=consensus)
                )
            for number, corrected in entries:
                db.add(ControlEntry(block_number=number, corrected=corrected))
            db.commit()

    return _seed


@pytest.fixture
def snapshot(session_factory):
    """Read back {number: consensus} and {block_number: corrected}"""

    def _snapshot():
        with session_factory() as db:
            blocks = {b.number: b.consensus for b in db.query(Block).all()}
            entries = {e.block_number: e.corrected for e in db.query(ControlEntry).all()}
        return blocks, entries

    return _snapshot
