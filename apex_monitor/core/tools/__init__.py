from apex_monitor.core.tools.agent_executor import check_agent_health, run_agent
from apex_monitor.core.tools.agent_types import AgentHealthStatus, AgentResult

__all__ = [
    "AgentHealthStatus",
    "AgentResult",
    "check_agent_health",
    "run_agent",
]
