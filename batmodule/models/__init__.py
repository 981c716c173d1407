from batmodule.models.base import Base
from batmodule.models.user import User

__all__ = [
    "Base",
    "User",
]
