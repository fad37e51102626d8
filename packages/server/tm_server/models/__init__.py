# SQLModel tables, imported so create_all sees their metadata.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .department import Department  # noqa: F401
from .user import User  # noqa: F401
from .user_role import UserRole  # noqa: F401
from .permission import Permission  # noqa: F401
from .task import Task  # noqa: F401
