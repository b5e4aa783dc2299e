# SQLModel definitions, imported here so Alembic sees the full metadata.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .user import User  # noqa: F401
from .room import Room  # noqa: F401
from .room_member import RoomMember  # noqa: F401
from .audit_log import AuditLog  # noqa: F401
