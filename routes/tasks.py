# routes/tasks.py
from fastapi import APIRouter, Depends, status
from typing import List

from core.dependencies import get_project_service
from core.security import get_current_context
from schemas.task_schema import CommentCreate, CommentRead, TaskRead, TaskUpdate
from services.project_service import ProjectService
from services.session_service import SessionContext

router = APIRouter(tags=["Tasks"])


# ================================================================
#  ✅ Read a single task
# ================================================================
@router.get("/{task_id}", response_model=TaskRead)
def get_task(
    task_id: str,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    return projects.get_task_for(context, task_id)


# ================================================================
#  ✅ Update task (any project member)
# ================================================================
@router.put("/{task_id}", response_model=TaskRead)
async def update_task(
    task_id: str,
    payload: TaskUpdate,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    """
    Partial update. A status change is recorded as its own
    activity with the old and new status.
    """
    return await projects.update_task(context, task_id, payload.model_dump(exclude_unset=True))


# ================================================================
#  ✅ Delete task (its comments go with it)
# ================================================================
@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    await projects.delete_task(context, task_id)
    return {"message": "Task deleted successfully"}


# ================================================================
#  ✅ Comments
# ================================================================
@router.get("/{task_id}/comments", response_model=List[CommentRead])
def get_comments(
    task_id: str,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    return projects.list_comments(context, task_id)


@router.post("/{task_id}/comments", response_model=CommentRead, status_code=status.HTTP_201_CREATED)
async def add_comment(
    task_id: str,
    payload: CommentCreate,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    return await projects.add_comment(context, task_id, payload.model_dump())
