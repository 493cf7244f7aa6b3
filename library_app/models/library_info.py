# library_app/models/library_info.py

from .base import BaseModel, db

DEFAULT_LIBRARY_NAME = "Library Management System"
DEFAULT_LIBRARY_EMAIL = "library@example.com"


class LibraryInfo(BaseModel):
    """Singleton-style description of the library itself"""

    __tablename__ = "library_info"

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(255), unique=True, nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False, default=DEFAULT_LIBRARY_NAME)
    opening_hours = db.Column(db.Text, nullable=True)
    address = db.Column(db.Text, nullable=True)
    phone = db.Column(db.String(100), nullable=True)
    email = db.Column(db.String(255), nullable=False, default=DEFAULT_LIBRARY_EMAIL)
    website = db.Column(db.String(500), nullable=True)
    catalog_url = db.Column(db.String(500), nullable=True)

    def __repr__(self):
        return f"<LibraryInfo {self.name}>"
