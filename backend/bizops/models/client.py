# bizops/models/client.py
import uuid

from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.orm import relationship

from bizops.core.base import Base


class Client(Base):
    __tablename__ = "clients"

    client_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    invoices = relationship("Invoice", back_populates="client")
