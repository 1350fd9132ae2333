# models.py
from sqlalchemy import Boolean, Column, DateTime, String, func
from db import Base

class Document(Base):
    __tablename__ = "documents"
    id = Column(String, primary_key=True)               # uuid4 string, immutable
    source_path = Column(String, nullable=False)        # annotated (pre-signature) PDF
    recipient_email = Column(String, nullable=False)
    filename = Column(String, nullable=True)            # original upload name
    signed = Column(Boolean, nullable=False, default=False)
    signed_path = Column(String, nullable=True)         # set together with signed=True
    created_at = Column(DateTime, server_default=func.now())
    dispatched_at = Column(DateTime, nullable=True)     # first dispatch attempt
    signed_at = Column(DateTime, nullable=True)
