import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Boolean, Float, TIMESTAMP, Enum, Index, text

from app.database import Base


def utcnow():
    """Naive UTC timestamp, the form stored in TIMESTAMP columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class VehicleClass(str, enum.Enum):
    MOTORCYCLE = "motorcycle"
    LIGHT_VEHICLE = "light_vehicle"


class VehicleSession(Base):
    __tablename__ = "vehicle_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    plate = Column(String(20), nullable=False)
    vehicle_class = Column(
        Enum(VehicleClass, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )
    is_electric_or_hybrid = Column(Boolean, nullable=False, default=False)
    assigned_spot = Column(Integer, nullable=False)
    entry_timestamp = Column(TIMESTAMP, nullable=False, default=utcnow)
    exit_timestamp = Column(TIMESTAMP, nullable=True)
    cost = Column(Float, nullable=False)
    is_false_positive = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # One active session per (class, spot)
    __table_args__ = (
        Index(
            "uq_active_class_spot",
            "vehicle_class",
            "assigned_spot",
            unique=True,
            sqlite_where=text("exit_timestamp IS NULL"),
            postgresql_where=text("exit_timestamp IS NULL"),
        ),
    )

    @property
    def is_active(self):
        return self.exit_timestamp is None
