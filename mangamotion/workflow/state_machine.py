"""
Workflow state machine.

Pure functions over a Project: which steps can be entered, forward advance
with artifact write-back, and backward retreat with cascading clears. The
project's artifact chain is

    colorized_panel => selected_panel => panels => image

and every mutation here keeps that chain intact.
"""

from typing import Dict, List, Optional, Set, Tuple

from mangamotion.core.constants import ColorizationSource, WORKFLOW_ORDER, WorkflowStep
from mangamotion.core.exceptions import (
    InvalidTransitionError,
    InvariantViolationError,
    StepBlockedError,
)
from mangamotion.core.logging_config import get_logger
from mangamotion.models.project import Project

logger = get_logger("workflow.state_machine")

UPLOAD = WorkflowStep.UPLOAD
CROP = WorkflowStep.CROP
COLORIZE = WorkflowStep.COLORIZE
ANIMATE = WorkflowStep.ANIMATE

# Fields cleared when moving back from one step to an earlier one.
RETREAT_CLEARS: Dict[Tuple[WorkflowStep, WorkflowStep], Tuple[str, ...]] = {
    (CROP, UPLOAD): (),
    (COLORIZE, UPLOAD): (),
    (ANIMATE, UPLOAD): (),
    (COLORIZE, CROP): ("selected_panel", "colorized_panel"),
    (ANIMATE, CROP): ("selected_panel", "colorized_panel"),
    (ANIMATE, COLORIZE): ("colorized_panel",),
}

DOWNSTREAM_OF_IMAGE = ("panels", "selected_panel", "colorized_panel")


def _clear(project: Project, fields: Tuple[str, ...]) -> None:
    for name in fields:
        setattr(project, name, [] if name == "panels" else None)
    if "colorized_panel" in fields:
        project.colorization_source = None


def blocked_steps(project: Project) -> Set[WorkflowStep]:
    """Steps that cannot be entered with the project's current artifacts."""
    blocked: Set[WorkflowStep] = set()
    if not project.image:
        blocked.update((CROP, COLORIZE, ANIMATE))
    if not project.panels or not project.selected_panel:
        blocked.update((COLORIZE, ANIMATE))
    if not project.colorized_panel:
        blocked.add(ANIMATE)
    return blocked


def is_reachable(project: Project, step: WorkflowStep) -> bool:
    return step not in blocked_steps(project)


def ordered_blocked_steps(project: Project) -> List[WorkflowStep]:
    blocked = blocked_steps(project)
    return [step for step in WORKFLOW_ORDER if step in blocked]


def check_invariants(project: Project) -> List[str]:
    """Names of the broken links in the artifact chain; empty when consistent."""
    violations = []
    if project.colorized_panel and not project.selected_panel:
        violations.append("colorizedPanel without selectedPanel")
    if project.selected_panel and not project.panels:
        violations.append("selectedPanel without panels")
    if project.panels and not project.image:
        violations.append("panels without image")
    if project.colorized_panel is None and project.colorization_source is not None:
        violations.append("colorizationSource without colorizedPanel")
    if project.current_step in blocked_steps(project):
        violations.append(f"currentStep '{project.current_step.value}' is blocked")
    return violations


def assert_invariants(project: Project) -> None:
    violations = check_invariants(project)
    if violations:
        raise InvariantViolationError(violations)


def set_image(project: Project, image: str) -> Project:
    """Replace the page image, drop everything derived from the old one and
    continue at the crop step."""
    project.image = image
    _clear(project, DOWNSTREAM_OF_IMAGE)
    project.current_step = CROP
    return project


def record_panels(project: Project, panels: List[str]) -> Project:
    """Store detected panels. The project stays at (or returns to) the crop step."""
    if not project.image:
        raise StepBlockedError(CROP.value, "no page image uploaded")
    if not panels:
        raise StepBlockedError(CROP.value, "no panels to record")
    project.panels = list(panels)
    _clear(project, ("selected_panel", "colorized_panel"))
    project.current_step = CROP
    return project


def advance(
    project: Project,
    artifact: str,
    source: Optional[ColorizationSource] = None,
) -> Project:
    """
    Write the current step's artifact and move forward one step.

    Args:
        project: Project to mutate
        artifact: Page image (upload), chosen panel (crop) or colorized panel (colorize)
        source: How the colorized panel was produced; defaults to remote

    Raises:
        InvalidTransitionError: at the last step
        StepBlockedError: the artifact cannot be accepted in the current state
    """
    step = project.current_step

    if step == UPLOAD:
        set_image(project, artifact)
    elif step == CROP:
        if not project.image:
            raise StepBlockedError(CROP.value, "no page image uploaded")
        if artifact not in project.panels:
            raise StepBlockedError(COLORIZE.value, "selected panel is not one of the detected panels")
        project.selected_panel = artifact
        _clear(project, ("colorized_panel",))
    elif step == COLORIZE:
        if not project.selected_panel:
            raise StepBlockedError(ANIMATE.value, "no panel selected")
        project.colorized_panel = artifact
        project.colorization_source = source or ColorizationSource.REMOTE
    else:
        raise InvalidTransitionError(step.value, step.value, "animate is the last step")

    project.current_step = WORKFLOW_ORDER[step.position + 1]
    logger.info(f"Project {project.id} advanced {step.value} -> {project.current_step.value}")
    return project


def retreat(project: Project, target: WorkflowStep) -> Project:
    """Move back to an earlier step, clearing what that step must redo."""
    current = project.current_step
    key = (current, target)
    if key not in RETREAT_CLEARS:
        raise InvalidTransitionError(current.value, target.value, "not a backward move")
    _clear(project, RETREAT_CLEARS[key])
    project.current_step = target
    logger.info(f"Project {project.id} retreated {current.value} -> {target.value}")
    return project


def navigate(project: Project, target: WorkflowStep) -> Project:
    """Move to any step: backward retreats, forward needs an unblocked target."""
    current = project.current_step
    if target == current:
        return project
    if target.position < current.position:
        return retreat(project, target)
    if not is_reachable(project, target):
        raise StepBlockedError(target.value, "required artifacts are missing")
    project.current_step = target
    logger.info(f"Project {project.id} moved {current.value} -> {target.value}")
    return project
