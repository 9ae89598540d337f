"""
Customer Module - Models
=========================
Customer: buyer referenced by sales orders and income transactions.
Customer management screens live elsewhere in the back office.
"""

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func

from config.database import Base


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    phone = Column(String(20), nullable=True, index=True)
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Customer {self.id} {self.name}>"
