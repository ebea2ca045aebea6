import uuid
from datetime import date

from sqlalchemy import Date, ForeignKey, Integer, String, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from buildledger.db.base import BaseModel


class Project(BaseModel):
    __tablename__ = "projects"

    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="KES")
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    # Tagged budget payload, see core.budget.schemas.ProjectBudget
    budget: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    # Bumped on every budget rewrite, writers compare it before saving
    budget_version: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1, server_default=text("1")
    )

    # Relationships
    owner = relationship("User", back_populates="projects", lazy="selectin")
    phases = relationship("ProjectPhase", back_populates="project", lazy="noload")
