"""Workflow definition model."""

from typing import Optional

from sqlalchemy import JSON, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class WorkflowDefinition(BaseModel):
    """A workflow graph as produced by the editor.

    The engine only reads these rows.

    Attributes:
        id: Unique identifier (UUID string)
        name: Workflow name
        description: Optional free text
        definition: JSON graph ``{"nodes": [...], "edges": [...], "viewport": {...}}``
        version: Version number, bumped by the editor on every save
        created_by: Principal that authored the workflow
    """

    __tablename__ = "workflow_definitions"

    name: Mapped[str] = mapped_column(nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    definition: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    version: Mapped[int] = mapped_column(default=1)
    created_by: Mapped[Optional[str]] = mapped_column(nullable=True)
