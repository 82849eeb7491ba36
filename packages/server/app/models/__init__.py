# SQLModel definitions, imported here so Alembic sees the full metadata.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .user import User  # noqa: F401
from .workspace import Workspace  # noqa: F401
from .membership import WorkspaceMember  # noqa: F401
from .invite import Invite  # noqa: F401
from .board import Board  # noqa: F401
from .task import Task  # noqa: F401
from .assignments import TaskAssignee  # noqa: F401
from .comment import Comment  # noqa: F401
from .activity import ActivityEvent  # noqa: F401
