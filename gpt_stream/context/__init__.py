"""Project context attached to prompts."""
from .resolver import (
    ContextResolver,
    ContextUnavailable,
    FileReadFailure,
    FilesystemProjectProvider,
    Picker,
    ProjectFileProvider,
    find_project_root,
    resolve_ad_hoc_selection,
)
from .selection import ContextSelection

__all__ = [
    "ContextResolver",
    "ContextSelection",
    "ContextUnavailable",
    "FileReadFailure",
    "FilesystemProjectProvider",
    "Picker",
    "ProjectFileProvider",
    "find_project_root",
    "resolve_ad_hoc_selection",
]
