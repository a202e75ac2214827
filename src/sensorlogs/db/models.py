from sqlalchemy import Column, String, DateTime, BigInteger, Index, Float
from sensorlogs.db.session import Base

class SensorLog(Base):
    __tablename__ = "sensor_logs"
    id = Column(BigInteger, primary_key=True)
    device_unique_id = Column(String, nullable=False)
    parameter_name = Column(String, nullable=False)
    value = Column(Float)
    # naive timestamp in the reference zone (WIB); never rewritten here
    recorded_at = Column(DateTime(timezone=False), nullable=False)
    __table_args__ = (
        Index("ix_sensor_logs_device_param_time", "device_unique_id", "parameter_name", "recorded_at"),
    )
