from enum import Enum


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    USER = "USER"
    DEMO_OBSERVER = "DEMO_OBSERVER"


class Department(str, Enum):
    IT_SUPPORT = "IT_SUPPORT"
    BILLING = "BILLING"
    PRODUCT = "PRODUCT"
    DESIGN = "DESIGN"


class RoomType(str, Enum):
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"
    TICKET = "TICKET"
    DM = "DM"


class RoomRole(str, Enum):
    OWNER = "OWNER"
    MODERATOR = "MODERATOR"
    MEMBER = "MEMBER"


class TicketStatus(str, Enum):
    OPEN = "OPEN"
    WAITING = "WAITING"
    RESOLVED = "RESOLVED"


# Rooms whose membership marks a user as internal staff
INTERNAL_ROOM_TYPES: frozenset[RoomType] = frozenset({RoomType.PUBLIC, RoomType.PRIVATE})
