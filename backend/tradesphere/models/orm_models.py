"""ORM Models for the pricing configuration store — SQLAlchemy 2.0"""
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import String, Boolean, Integer, Numeric, DateTime, UniqueConstraint, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from tradesphere.db import Base


def gen_uuid():
    return str(uuid.uuid4())


# Columns a config update may write
EDITABLE_COLUMNS = (
    "hourly_labor_rate",
    "optimal_team_size",
    "base_productivity",
    "base_material_cost",
    "profit_margin",
    "variables_config",
    "default_variables",
    "is_active",
    "version",
    "updated_by",
)


# ── SERVICE PRICING CONFIGS ──────────────────────────────────────────────────
class ServicePricingConfig(Base):
    __tablename__ = "service_pricing_configs"
    __table_args__ = (
        UniqueConstraint("company_id", "service_name", name="service_pricing_configs_unique"),
        Index("idx_service_pricing_configs_company", "company_id"),
    )

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    company_id: Mapped[str] = mapped_column(UUID(as_uuid=False), nullable=False)
    service_name: Mapped[str] = mapped_column(String(100), nullable=False)
    hourly_labor_rate: Mapped[float] = mapped_column(Numeric(8, 2), nullable=False, default=25.00)
    optimal_team_size: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    base_productivity: Mapped[float] = mapped_column(Numeric(8, 2), nullable=False, default=50.00)
    base_material_cost: Mapped[float] = mapped_column(Numeric(8, 2), nullable=False, default=5.84)
    profit_margin: Mapped[float] = mapped_column(Numeric(4, 3), nullable=False, default=0.20)
    variables_config: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    default_variables: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    version: Mapped[Optional[str]] = mapped_column(String(20), default="2.0.0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    updated_by: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False))

    def to_record(self) -> Dict[str, Any]:
        """Plain row dict in the store's record shape (NUMERIC columns as floats)."""
        return {
            "id": self.id,
            "company_id": self.company_id,
            "service_name": self.service_name,
            "hourly_labor_rate": float(self.hourly_labor_rate) if self.hourly_labor_rate is not None else None,
            "optimal_team_size": self.optimal_team_size,
            "base_productivity": float(self.base_productivity) if self.base_productivity is not None else None,
            "base_material_cost": float(self.base_material_cost) if self.base_material_cost is not None else None,
            "profit_margin": float(self.profit_margin) if self.profit_margin is not None else None,
            "variables_config": self.variables_config or {},
            "default_variables": self.default_variables or {},
            "is_active": self.is_active,
            "version": self.version,
            "updated_at": self.updated_at,
            "updated_by": self.updated_by,
        }
