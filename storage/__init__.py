from .interfaces import BackendError, ProjectConflictError, ProjectNotFoundError, ProjectRepo
from .models import (
    CreateProjectRequest,
    GenerationStatus,
    ProjectRecord,
    ProjectStatus,
    UpdateProjectRequest,
    default_project_context,
)
from .runtime import build_project_repo

__all__ = [
    "BackendError",
    "CreateProjectRequest",
    "GenerationStatus",
    "ProjectConflictError",
    "ProjectNotFoundError",
    "ProjectRecord",
    "ProjectRepo",
    "ProjectStatus",
    "UpdateProjectRequest",
    "build_project_repo",
    "default_project_context",
]
