# routes/projects.py
from fastapi import APIRouter, Depends, Query, status
from typing import Any, Dict, List

from core.dependencies import get_invitation_workflow, get_project_service
from core.security import get_current_context
from schemas.invitation_schema import InvitationCreate, InvitationRead
from schemas.project_schema import (
    ActivityRead,
    AiSuggestionCreate,
    AiSuggestionRead,
    CredentialSetIn,
    MemberAdd,
    MemberRead,
    ProjectCreate,
    ProjectRead,
    ProjectStats,
    ProjectUpdate,
    ShareLinkRead,
)
from schemas.task_schema import TaskCreate, TaskRead
from services.invitation_service import InvitationWorkflow
from services.project_service import ProjectService
from services.session_service import SessionContext

router = APIRouter(tags=["Projects"])


# ==================================================================
#  ✅ Create / list / read / update / delete projects
# ==================================================================
@router.post("/", response_model=ProjectRead, status_code=status.HTTP_201_CREATED)
async def create_project(
    data: ProjectCreate,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    project = await projects.create_project(context, data.model_dump())
    return ProjectRead.from_project(project)


@router.get("/", response_model=List[ProjectRead])
def get_projects(
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    return [ProjectRead.from_project(p) for p in projects.list_projects(context)]


@router.post("/sync", response_model=List[ProjectRead])
async def sync_projects(
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    """Index the Drive projects the caller owns or was granted, then list them."""
    return [ProjectRead.from_project(p) for p in await projects.sync_from_drive(context)]


@router.get("/{project_id}", response_model=ProjectRead)
def get_project(
    project_id: str,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    return ProjectRead.from_project(projects.get_project(context, project_id))


@router.put("/{project_id}", response_model=ProjectRead)
async def update_project(
    project_id: str,
    data: ProjectUpdate,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    project = await projects.update_project(context, project_id, data.model_dump(exclude_unset=True))
    return ProjectRead.from_project(project)


@router.delete("/{project_id}")
def delete_project(
    project_id: str,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    projects.delete_project(context, project_id)
    return {"message": "Project deleted successfully"}


@router.put("/{project_id}/credentials", response_model=ProjectRead)
async def update_project_credentials(
    project_id: str,
    data: CredentialSetIn,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    """Rotate the project's Google API configuration (owner only)."""
    project = await projects.update_credentials(context, project_id, data.to_credential_set(email=context.email))
    return ProjectRead.from_project(project)


@router.post("/{project_id}/share-link", response_model=ShareLinkRead)
async def create_share_link(
    project_id: str,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    return {"link": await projects.create_shareable_link(context, project_id)}


@router.post("/{project_id}/reindex", response_model=ProjectRead)
async def reindex_project(
    project_id: str,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    """Rebuild the local index of this project from its Drive document."""
    projects.require_member(project_id, context.user_id)
    snapshot = await projects.reindex_project(project_id)
    return ProjectRead.from_project(projects.get_project(context, snapshot.project.id))


# ==================================================================
#  ✅ Members and invitations
# ==================================================================
@router.get("/{project_id}/members", response_model=List[MemberRead])
def get_members(
    project_id: str,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    return [
        MemberRead.model_validate(member).model_copy(update={"provisional": provisional})
        for member, provisional in projects.list_members(context, project_id)
    ]


@router.post("/{project_id}/members", response_model=MemberRead, status_code=status.HTTP_201_CREATED)
async def add_member(
    project_id: str,
    data: MemberAdd,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    member = await projects.add_member_as(context, project_id, data.email, data.role)
    provisional = projects.mirror.is_provisional(member.user_id)
    return MemberRead.model_validate(member).model_copy(update={"provisional": provisional})


@router.delete("/{project_id}/members/{user_id}")
async def remove_member(
    project_id: str,
    user_id: str,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    await projects.remove_member(context, project_id, user_id)
    return {"message": "Member removed successfully"}


@router.post("/{project_id}/invitations", response_model=InvitationRead, status_code=status.HTTP_201_CREATED)
async def invite_member(
    project_id: str,
    data: InvitationCreate,
    context: SessionContext = Depends(get_current_context),
    workflow: InvitationWorkflow = Depends(get_invitation_workflow),
):
    return await workflow.create_invitation(context, project_id, data.email, data.role)


# ==================================================================
#  ✅ Tasks of a project
# ==================================================================
@router.get("/{project_id}/tasks", response_model=List[TaskRead])
def get_tasks(
    project_id: str,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    return projects.list_tasks(context, project_id)


@router.post("/{project_id}/tasks", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def create_task(
    project_id: str,
    payload: TaskCreate,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    return await projects.create_task(context, project_id, payload.model_dump())


# ==================================================================
#  ✅ Activity feed and stats
# ==================================================================
@router.get("/{project_id}/activities", response_model=List[ActivityRead])
def get_activities(
    project_id: str,
    limit: int = Query(default=20, ge=1, le=200),
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    return projects.list_activities(context, project_id, limit)


@router.get("/{project_id}/stats", response_model=ProjectStats)
def get_stats(
    project_id: str,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    return projects.get_stats(context, project_id)


# ==================================================================
#  ✅ AI suggestions and insights
# ==================================================================
@router.get("/{project_id}/ai-suggestions", response_model=List[AiSuggestionRead])
def get_ai_suggestions(
    project_id: str,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    return projects.list_ai_suggestions(context, project_id)


@router.post("/{project_id}/ai-suggestions", response_model=AiSuggestionRead, status_code=status.HTTP_201_CREATED)
async def add_ai_suggestion(
    project_id: str,
    data: AiSuggestionCreate,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    return await projects.add_ai_suggestion(context, project_id, data.model_dump())


@router.post("/{project_id}/ai-suggestions/{suggestion_id}/apply")
async def apply_ai_suggestion(
    project_id: str,
    suggestion_id: str,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    await projects.resolve_ai_suggestion(context, project_id, suggestion_id, applied=True)
    return {"message": "Suggestion applied"}


@router.post("/{project_id}/ai-suggestions/{suggestion_id}/dismiss")
async def dismiss_ai_suggestion(
    project_id: str,
    suggestion_id: str,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    await projects.resolve_ai_suggestion(context, project_id, suggestion_id, applied=False)
    return {"message": "Suggestion dismissed"}


@router.get("/{project_id}/ai-insights")
async def get_ai_insights(
    project_id: str,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
) -> Dict[str, Any]:
    return {"ok": True, "insights": await projects.generate_insights(context, project_id)}


@router.get("/{project_id}/workload-analysis")
async def get_workload_analysis(
    project_id: str,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
) -> Dict[str, Any]:
    return {"ok": True, **await projects.analyze_workload(context, project_id)}
