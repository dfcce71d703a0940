"""SQLAlchemy database models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Competitor(str, Enum):
    """Tracked hosting providers."""

    VULTR = "VULTR"
    OVHCLOUD = "OVHCLOUD"
    HETZNER = "HETZNER"
    TERASWITCH = "TERASWITCH"
    CHERRYSERVERS = "CHERRYSERVERS"
    LIMESTONENETWORKS = "LIMESTONENETWORKS"
    SERVERSCOM = "SERVERSCOM"
    DATAPACKET = "DATAPACKET"


class City(Base):
    """Provider-namespaced datacenter city (e.g. code 'ovh-fra')."""

    __tablename__ = "cities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    country: Mapped[str] = mapped_column(String(64), nullable=False)

    competitor_products: Mapped[list["CompetitorProduct"]] = relationship(
        "CompetitorProduct", back_populates="city"
    )


class ReferenceProduct(Base):
    """Reference vendor SKU being benchmarked."""

    __tablename__ = "reference_products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    cpu: Mapped[str] = mapped_column(String(255), nullable=False)
    cpu_cores: Mapped[int] = mapped_column(Integer, nullable=False)
    ram_gb: Mapped[int] = mapped_column(Integer, nullable=False)
    storage_description: Mapped[str] = mapped_column(Text, nullable=False)
    storage_total_tb: Mapped[float] = mapped_column(Float, nullable=False)
    network_gbps: Mapped[int] = mapped_column(Integer, nullable=False)
    price_usd: Mapped[float] = mapped_column(Float, nullable=False)  # List price
    generation: Mapped[int] = mapped_column(Integer, default=4, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    regional_prices: Mapped[list["RegionalPrice"]] = relationship(
        "RegionalPrice",
        back_populates="reference_product",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    comparisons: Mapped[list["Comparison"]] = relationship(
        "Comparison",
        back_populates="reference_product",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class RegionalPrice(Base):
    """Reference SKU price override for one pricing region."""

    __tablename__ = "regional_prices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    reference_product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("reference_products.id", ondelete="CASCADE"), nullable=False
    )
    region: Mapped[str] = mapped_column(String(8), nullable=False)  # US, BR, DE...
    price_usd: Mapped[float] = mapped_column(Float, nullable=False)

    reference_product: Mapped["ReferenceProduct"] = relationship(
        "ReferenceProduct", back_populates="regional_prices"
    )

    __table_args__ = (
        UniqueConstraint("reference_product_id", "region", name="uq_regional_price_product_region"),
    )


class CompetitorProduct(Base):
    """Normalized competitor SKU in one city."""

    __tablename__ = "competitor_products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    competitor: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    cpu: Mapped[str] = mapped_column(String(255), nullable=False)
    cpu_cores: Mapped[int] = mapped_column(Integer, nullable=False)
    ram_gb: Mapped[int] = mapped_column(Integer, nullable=False)
    storage_description: Mapped[str] = mapped_column(Text, nullable=False)
    storage_total_tb: Mapped[float] = mapped_column(Float, nullable=False)
    network_gbps: Mapped[int] = mapped_column(Integer, nullable=False)
    price_usd: Mapped[float] = mapped_column(Float, nullable=False)
    city_id: Mapped[int] = mapped_column(Integer, ForeignKey("cities.id"), nullable=False)
    source_url: Mapped[str] = mapped_column(Text, nullable=False)
    inventory_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    in_stock: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    last_verified: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    last_inventory_check: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    city: Mapped["City"] = relationship("City", back_populates="competitor_products")
    comparisons: Mapped[list["Comparison"]] = relationship(
        "Comparison",
        back_populates="competitor_product",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    # (competitor, name, city_id) is the intended identity; ingestion dedupes
    # on it but the table does not enforce it for manually entered rows.
    __table_args__ = (
        Index("ix_competitor_product_identity", "competitor", "name", "city_id"),
    )


class Comparison(Base):
    """One matched (reference SKU, competitor SKU) pair."""

    __tablename__ = "comparisons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    reference_product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("reference_products.id", ondelete="CASCADE"), nullable=False
    )
    competitor_product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("competitor_products.id", ondelete="CASCADE"), nullable=False
    )
    # Positive: the reference SKU is cheaper
    price_difference_percent: Mapped[float] = mapped_column(Float, nullable=False)
    regional_reference_price_usd: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    reference_product: Mapped["ReferenceProduct"] = relationship(
        "ReferenceProduct", back_populates="comparisons"
    )
    competitor_product: Mapped["CompetitorProduct"] = relationship(
        "CompetitorProduct", back_populates="comparisons"
    )


class PriceHistory(Base):
    """Append-only record of a significant competitor price change."""

    __tablename__ = "price_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    competitor_product_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("competitor_products.id", ondelete="SET NULL"), nullable=True
    )
    competitor: Mapped[str] = mapped_column(String(32), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    city_name: Mapped[str] = mapped_column(String(128), nullable=False)
    old_price: Mapped[float] = mapped_column(Float, nullable=False)
    new_price: Mapped[float] = mapped_column(Float, nullable=False)
    change_percent: Mapped[float] = mapped_column(Float, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )


class PipelineRun(Base):
    """Tracks daily pipeline runs and their results."""

    __tablename__ = "pipeline_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    run_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    trigger: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)  # 'scheduled' | 'manual'
    status: Mapped[str] = mapped_column(String(20), default="running", nullable=False)  # running, completed, failed
    rules_version: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    products_ingested: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    entries_skipped: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_units: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    price_changes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    comparisons_created: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def duration_seconds(self) -> float | None:
        """Wall-clock duration of a finished run."""
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()
