"""Built-in agent templates used when the engine creates agents itself."""

from __future__ import annotations

from dataclasses import dataclass

from mission_hq.orchestrator.models import SQUAD_LEAD_ROLE

DEFAULT_PROVIDER = "zai"

_PLAN_SCHEMA_HINT = """\
Respond with a JSON plan:
{
  "complexity": "low|medium|high|critical",
  "summary": "...",
  "agents": [{"id": "agent-1", "name": "...", "role": "...", "template": "...",
              "capabilities": ["..."]}],
  "tasks": [{"id": "task-1", "title": "...", "description": "...", "type": "...",
             "priority": "high|medium|low", "dependencies": [],
             "assignedAgentRole": "..."}],
  "dependencies": [{"taskId": "task-2", "dependsOn": ["task-1"]}]
}"""


@dataclass(frozen=True, slots=True)
class AgentTemplate:
    """Defaults applied to an agent created for a role."""

    template_id: str
    name: str
    role: str
    default_llm_model: str
    capabilities: tuple[str, ...]
    personality: str
    default_provider: str = DEFAULT_PROVIDER
    is_reusable: bool = True

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.template_id,
            "name": self.name,
            "role": self.role,
            "capabilities": list(self.capabilities),
            "defaultLlmModel": self.default_llm_model,
            "defaultProvider": self.default_provider,
        }


AGENT_TEMPLATES: dict[str, AgentTemplate] = {
    template.template_id: template
    for template in (
        AgentTemplate(
            template_id=SQUAD_LEAD_ROLE,
            name="Squad Lead",
            role=SQUAD_LEAD_ROLE,
            default_llm_model="glm-4-plus",
            capabilities=(
                "mission_analysis",
                "task_planning",
                "agent_coordination",
                "resource_allocation",
                "progress_monitoring",
            ),
            personality=(
                "You lead a squad of specialised agents. Assess the mission, split it into "
                "executable tasks, pick the agents it needs and order the work by its "
                "dependencies.\n\n" + _PLAN_SCHEMA_HINT
            ),
        ),
        AgentTemplate(
            template_id="researcher",
            name="Researcher",
            role="researcher",
            default_llm_model="glm-4",
            capabilities=(
                "web_search",
                "data_analysis",
                "information_synthesis",
                "fact_checking",
                "source_evaluation",
            ),
            personality=(
                "You find, verify and synthesise information from multiple sources. "
                "Always cite where each finding came from."
            ),
        ),
        AgentTemplate(
            template_id="developer",
            name="Developer",
            role="developer",
            default_llm_model="glm-4",
            capabilities=(
                "code_execution",
                "code_review",
                "debugging",
                "code_generation",
                "testing",
            ),
            personality="You write, review, debug and run code, and you test what you ship.",
        ),
        AgentTemplate(
            template_id="writer",
            name="Writer",
            role="writer",
            default_llm_model="glm-4",
            capabilities=(
                "content_generation",
                "editing",
                "copywriting",
                "documentation",
                "summarization",
            ),
            personality="You draft and edit clear, well-structured content for the audience.",
        ),
        AgentTemplate(
            template_id="analyst",
            name="Analyst",
            role="analyst",
            default_llm_model="glm-4",
            capabilities=(
                "data_analysis",
                "statistics",
                "pattern_recognition",
                "trend_analysis",
                "reporting",
            ),
            personality="You analyse data methodically and explain how you reached each insight.",
        ),
        AgentTemplate(
            template_id="auditor",
            name="Auditor",
            role="auditor",
            default_llm_model="glm-4-plus",
            capabilities=("failure_analysis", "task_review", "decision_making"),
            personality=(
                "You review tasks that exhausted their retries and decide to reassign, "
                "refine, retry once more or escalate to a human."
            ),
        ),
    )
}


def get_template(template_id: str) -> AgentTemplate | None:
    return AGENT_TEMPLATES.get(template_id)


def squad_lead_template() -> AgentTemplate:
    return AGENT_TEMPLATES[SQUAD_LEAD_ROLE]


def worker_templates() -> list[AgentTemplate]:
    """Templates a squad lead may staff its mission with."""

    return [
        template
        for template in AGENT_TEMPLATES.values()
        if template.role not in {SQUAD_LEAD_ROLE, "auditor"}
    ]
