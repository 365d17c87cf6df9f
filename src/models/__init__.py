from .base import Base
from .block import Block
from .control_entry import ControlEntry

__all__ = [
    "Base",
    "Block",
    "ControlEntry",
]
