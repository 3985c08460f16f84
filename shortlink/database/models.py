from shortlink.database.base import Base
from shortlink.auth.db import User
from shortlink.links.models import ShortLink, Schedule, AccessLog

__all__ = ["User", "ShortLink", "Schedule", "AccessLog", "Base"]
