"""AI insight collaborator: Gemini generateContent over async httpx."""

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from core.config import settings
from core.errors import AIAnalysisUnavailable, CredentialsNotConfigured
from models.models import TaskStatus
from schemas.project_data_schema import MemberDoc, ProjectDoc, TaskDoc

logger = logging.getLogger(__name__)

INSIGHTS_PROMPT = """
Analyze this project management data and provide actionable insights:

{data}

Please provide a comprehensive analysis in the following JSON format:
{{
  "workloadAnalysis": "Brief analysis of current workload distribution and bottlenecks",
  "taskOptimization": ["Specific suggestion 1", "Specific suggestion 2", "Specific suggestion 3"],
  "riskAssessment": "Assessment of project risks and potential delays",
  "productivityRecommendations": ["Recommendation 1", "Recommendation 2", "Recommendation 3"],
  "timelinePrediction": "Realistic timeline prediction based on current progress",
  "teamBalancing": ["Team balancing suggestion 1", "Team balancing suggestion 2"]
}}

Focus on overloaded team members, blocking tasks, task sequencing, realistic
timeline adjustments and risk mitigation. Keep suggestions specific and actionable.
Return valid JSON only."""

WORKLOAD_PROMPT = """
Analyze team workload distribution and provide recommendations:

{data}

Provide analysis in this JSON format:
{{
  "overloadedMembers": ["member1@email.com"],
  "underutilizedMembers": ["member2@email.com"],
  "recommendations": ["Specific rebalancing recommendation 1", "Recommendation 2"],
  "efficiencyInsights": ["Insight about team efficiency 1", "Insight 2"],
  "workloadScore": "Overall workload balance score from 1-10 with explanation"
}}

Focus on identifying imbalances and providing specific redistribution recommendations.
Return valid JSON only."""


def compute_workload(members: List[MemberDoc], tasks: List[TaskDoc]) -> List[Dict[str, Any]]:
    """Per-member task counts and hours, computed locally."""
    workload = []
    for member in members:
        assigned = [t for t in tasks if t.assignee_id == member.user_id]
        workload.append(
            {
                "email": member.user_id,
                "role": member.role,
                "assignedTasks": len(assigned),
                "totalEstimatedHours": sum(t.estimated_hours or 0 for t in assigned),
                "totalActualHours": sum(t.actual_hours or 0 for t in assigned),
                "completedTasks": sum(1 for t in assigned if t.status == TaskStatus.DONE.value),
                "inProgressTasks": sum(1 for t in assigned if t.status == TaskStatus.IN_PROGRESS.value),
                "todoTasks": sum(1 for t in assigned if t.status == TaskStatus.TODO.value),
            }
        )
    return workload


class AIInsightsService:
    """Treats the model as an opaque collaborator that should answer with a JSON object."""

    def __init__(self, api_key: Optional[str], transport: Optional[httpx.AsyncBaseTransport] = None):
        if not api_key:
            raise CredentialsNotConfigured(
                "No Google AI (Gemini) API key is configured for this session or project."
            )
        self.api_key = api_key
        self.transport = transport
        self.base_url = settings.GEMINI_API_BASE_URL.rstrip("/")
        self.model_name = settings.GEMINI_MODEL

    async def generate_project_insights(
        self, project: ProjectDoc, tasks: List[TaskDoc], members: List[MemberDoc]
    ) -> Dict[str, Any]:
        summary = {
            "project": {
                "name": project.name,
                "description": project.description,
                "status": project.status,
                "createdAt": project.created_at.isoformat(),
            },
            "tasks": [
                {
                    "title": t.title,
                    "status": t.status,
                    "priority": t.priority,
                    "estimatedHours": t.estimated_hours,
                    "actualHours": t.actual_hours,
                    "progress": t.progress,
                    "dueDate": t.due_date.isoformat() if t.due_date else None,
                    "assigneeId": t.assignee_id,
                    "tags": t.tags,
                }
                for t in tasks
            ],
            "teamMembers": [{"email": m.user_id, "role": m.role} for m in members],
        }
        return await self._generate(INSIGHTS_PROMPT.format(data=json.dumps(summary, indent=2)))

    async def generate_workload_analysis(self, members: List[MemberDoc], tasks: List[TaskDoc]) -> Dict[str, Any]:
        workload = compute_workload(members, tasks)
        analysis = await self._generate(WORKLOAD_PROMPT.format(data=json.dumps(workload, indent=2)))
        return {"workload": workload, "analysis": analysis}

    async def _generate(self, prompt: str) -> Dict[str, Any]:
        url = f"{self.base_url}/models/{self.model_name}:generateContent"
        payload = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}

        try:
            async with httpx.AsyncClient(timeout=settings.REMOTE_TIMEOUT_SECONDS, transport=self.transport) as client:
                response = await client.post(url, params={"key": self.api_key}, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning("gemini_request http_error model=%s status=%s", self.model_name, e.response.status_code)
            raise AIAnalysisUnavailable() from e
        except (httpx.TransportError, ValueError) as e:
            logger.warning("gemini_request failed model=%s error=%s", self.model_name, e)
            raise AIAnalysisUnavailable() from e

        parsed = self._parse_json_response(self._response_text(data))
        if parsed is None:
            raise AIAnalysisUnavailable("The AI response could not be read as an analysis.")
        return parsed

    @staticmethod
    def _response_text(data: Dict[str, Any]) -> str:
        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            return ""
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))

    @staticmethod
    def _parse_json_response(text: str) -> Optional[Dict[str, Any]]:
        """Parse the model text as a JSON object, tolerating ```json fences."""
        cleaned = text.strip()
        if cleaned.startswith("```"):
            cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
            if cleaned.rstrip().endswith("```"):
                cleaned = cleaned.rstrip()[:-3]
        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError:
            logger.warning("AI response is not valid JSON (%s chars)", len(text))
            return None
        return parsed if isinstance(parsed, dict) else None
