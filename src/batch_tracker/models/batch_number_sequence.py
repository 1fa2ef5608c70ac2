"""
BatchNumberSequence model: per-day counter for production batch numbers.

Counters only move forward, so a number handed out once is never handed
out again, even after the batch that carried it is deleted.
"""

from sqlalchemy import Column, Integer, String, CheckConstraint

from .base import BaseModel


class BatchNumberSequence(BaseModel):
    """
    Attributes:
        period: Day key, formatted YYYYMMDD
        last_value: Highest disambiguator issued for the period
    """

    __tablename__ = "batch_number_sequences"

    period = Column(String(8), nullable=False, unique=True)
    last_value = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("last_value >= 0", name="ck_batch_number_sequence_non_negative"),
    )
