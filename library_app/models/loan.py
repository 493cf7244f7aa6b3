# library_app/models/loan.py

from sqlalchemy import Enum, Index

from .base import BaseModel, db
from .enums import LoanStatus

GUEST_BORROWER_NAME = "Legacy User"


class Loan(BaseModel):
    """Circulation record of a material (and usually a specific copy)"""

    __tablename__ = "loans"

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(255), unique=True, nullable=True, index=True)
    material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=False, index=True)
    copy_id = db.Column(db.Integer, db.ForeignKey("copies.id", ondelete="SET NULL"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    guest_name = db.Column(db.String(200), nullable=True)  # borrower without an account
    loan_date = db.Column(db.DateTime, nullable=True)
    due_date = db.Column(db.DateTime, nullable=True)
    return_date = db.Column(db.DateTime, nullable=True)
    status = db.Column(
        Enum(LoanStatus, name="loan_status_enum"),
        default=LoanStatus.REQUESTED,
        nullable=False,
        index=True,
    )
    renewal_count = db.Column(db.Integer, default=0, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    material = db.relationship("Material", back_populates="loans")
    copy = db.relationship("Copy", back_populates="loans")
    user = db.relationship("User", back_populates="loans")

    __table_args__ = (Index("idx_loans_status_due", "status", "due_date"),)

    def __repr__(self):
        return f"<Loan {self.external_id or self.id} {self.status}>"

    @property
    def borrower_name(self):
        if self.user is not None:
            return self.user.full_name
        return self.guest_name or GUEST_BORROWER_NAME
