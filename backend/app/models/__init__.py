# Import all models so Base.metadata is populated for create_all.
from app.models.athlete import Athlete  # noqa: F401
from app.models.agent_preferences import AgentPreferences  # noqa: F401
from app.models.agent_consent import AgentConsent  # noqa: F401
from app.models.agent_perception import AgentPerception  # noqa: F401
from app.models.agent_action import AgentAction, AgentOversightItem  # noqa: F401
from app.models.agent_learning import AgentLearningEvent  # noqa: F401
from app.models.audit import AgentAuditLog  # noqa: F401
