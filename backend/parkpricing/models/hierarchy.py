"""Physical parking hierarchy: locations, sections, zones and spots."""

from __future__ import annotations

import enum
import uuid

from sqlalchemy import Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from parkpricing.db.base import Base
from parkpricing.models.mixins import PricedNodeMixin


class SpotStatus(str, enum.Enum):
    """Occupancy state of a single parking spot."""

    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    MAINTENANCE = "maintenance"


class Location(PricedNodeMixin, Base):
    """Top level of the hierarchy, owned by an operator."""

    __tablename__ = "locations"

    operator_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # IANA zone name; null falls back to the configured default.
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)

    sections: Mapped[list["Section"]] = relationship(
        "Section", back_populates="location", cascade="all, delete-orphan"
    )


class Section(PricedNodeMixin, Base):
    """Second level; inherits pricing from its location when unset."""

    __tablename__ = "sections"

    location_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    location: Mapped[Location] = relationship("Location", back_populates="sections")
    zones: Mapped[list["Zone"]] = relationship(
        "Zone", back_populates="section", cascade="all, delete-orphan"
    )


class Zone(PricedNodeMixin, Base):
    """Third level; inherits pricing from its section when unset."""

    __tablename__ = "zones"

    section_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("sections.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    section: Mapped[Section] = relationship("Section", back_populates="zones")
    spots: Mapped[list["ParkingSpot"]] = relationship(
        "ParkingSpot", back_populates="zone", cascade="all, delete-orphan"
    )


class ParkingSpot(PricedNodeMixin, Base):
    """Leaf of the hierarchy; inherits pricing from its zone when unset."""

    __tablename__ = "parking_spots"

    zone_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("zones.id", ondelete="CASCADE"), nullable=False, index=True
    )
    number: Mapped[str] = mapped_column(String(32), nullable=False)
    vehicle_type: Mapped[str] = mapped_column(String(32), nullable=False, default="car")
    status: Mapped[SpotStatus] = mapped_column(
        Enum(SpotStatus), nullable=False, default=SpotStatus.AVAILABLE
    )

    zone: Mapped[Zone] = relationship("Zone", back_populates="spots")
