"""External agent definition model."""

from typing import Optional

from sqlalchemy import JSON, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import AgentProvider
from db.base import BaseModel


class AgentDefinition(BaseModel):
    """An HTTP-reachable AI agent that AgentTask nodes delegate to.

    Attributes:
        id: Unique identifier (UUID string)
        name: Display name, used in error messages
        description: Optional free text
        provider: SuperAGI, AutoGen, OpenAI_Assistant or Custom; selects the payload shape
        config: Provider settings, at least ``apiEndpoint`` and usually ``apiKey``
        created_by: Principal that registered the agent
    """

    __tablename__ = "agent_definitions"

    name: Mapped[str] = mapped_column(nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    provider: Mapped[str] = mapped_column(default=AgentProvider.CUSTOM.value)
    config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_by: Mapped[Optional[str]] = mapped_column(nullable=True)
