from __future__ import annotations

import datetime as dt

from sqlalchemy import DateTime, Float, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class ServiceRequest(Base):
    """
    Raw service-request rows as ingested from the request dump.
    Kept close to the source: normalization (grouping issue, exclusions) happens in the pipeline, not here.
    """

    __tablename__ = "service_requests"

    request_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    parent_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    request_type: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    created_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)
    area_key: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    # Provenance (which dump the row came from)
    source_filename: Mapped[str | None] = mapped_column(String(256), nullable=True, index=True)
    ingested_at: Mapped[dt.datetime] = mapped_column(DateTime, default=lambda: dt.datetime.utcnow(), nullable=False)


class Area(Base):
    __tablename__ = "areas"

    area_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    area_name: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    area_sq_mi: Mapped[float] = mapped_column(Float, nullable=False)


class AreaPopulation(Base):
    """
    Population estimates keyed by area NAME (not key); both reference sources must agree on naming.
    """

    __tablename__ = "area_population"

    area_name: Mapped[str] = mapped_column(String(128), primary_key=True)
    estimated_population: Mapped[int] = mapped_column(Integer, nullable=False)
