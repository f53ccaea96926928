# SQLModel definitions, imported here to ensure metadata is populated for create_all.
from .base import CreatedAtMixin, UUIDMixin  # noqa: F401
from .user import User  # noqa: F401
from .submission import Submission  # noqa: F401
