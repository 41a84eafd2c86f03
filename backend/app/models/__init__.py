from app.models.assignment import Assignment  # noqa: F401
from app.models.deleted_identity import DeletedIdentity  # noqa: F401
from app.models.team_function import TeamFunction  # noqa: F401
from app.models.user import User  # noqa: F401
