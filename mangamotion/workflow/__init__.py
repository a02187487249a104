"""
MangaMotion Workflow

Project state machine, fallback policy, persistence and the service that
drives a project through the workflow.
"""

from mangamotion.workflow import state_machine
from mangamotion.workflow.fallback import Fallback, FallbackPolicy, pick_animation_type
from mangamotion.workflow.service import WorkflowService
from mangamotion.workflow.store import KeyValueStorage, MusicLibrary, ProjectStore

__all__ = [
    "state_machine",
    "Fallback",
    "FallbackPolicy",
    "pick_animation_type",
    "WorkflowService",
    "KeyValueStorage",
    "MusicLibrary",
    "ProjectStore",
]
