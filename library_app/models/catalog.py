# library_app/models/catalog.py

from sqlalchemy import Enum, Index, UniqueConstraint

from .base import BaseModel, db
from .enums import CopyStatus


class Category(BaseModel):
    """Subject-area grouping of materials (Dewey classes and house defaults)"""

    __tablename__ = "categories"

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(255), unique=True, nullable=True, index=True)
    name = db.Column(db.String(200), unique=True, nullable=False, index=True)
    code = db.Column(db.String(20), nullable=True, index=True)  # Dewey class number
    description = db.Column(db.Text, nullable=True)

    materials = db.relationship("Material", back_populates="category")

    def __repr__(self):
        return f"<Category {self.name}>"


class Collection(BaseModel):
    """Shelving collection with its loan period"""

    __tablename__ = "collections"

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(255), unique=True, nullable=True, index=True)
    code = db.Column(db.String(50), nullable=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    days_due_back = db.Column(db.Integer, nullable=True)

    materials = db.relationship("Material", back_populates="collection")

    def __repr__(self):
        return f"<Collection {self.name}>"


class MaterialType(BaseModel):
    """Format of a material (book, serial, video...)"""

    __tablename__ = "material_types"

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(255), unique=True, nullable=True, index=True)
    code = db.Column(db.String(50), nullable=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)

    materials = db.relationship("Material", back_populates="material_type")

    def __repr__(self):
        return f"<MaterialType {self.name}>"


class Subject(BaseModel):
    """Canonical topical term shared across materials"""

    __tablename__ = "subjects"

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(512), unique=True, nullable=True, index=True)
    name = db.Column(db.String(255), unique=True, nullable=False, index=True)

    material_links = db.relationship("MaterialSubject", back_populates="subject", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Subject {self.name}>"


class Material(BaseModel):
    """Bibliographic record; owns its copies"""

    __tablename__ = "materials"

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(255), unique=True, nullable=True, index=True)
    title = db.Column(db.String(500), nullable=False, index=True)
    subtitle = db.Column(db.String(500), nullable=True)
    author = db.Column(db.String(255), nullable=False, index=True)
    isbn = db.Column(db.String(50), nullable=True, index=True)
    edition = db.Column(db.String(100), nullable=True)
    publisher = db.Column(db.String(255), nullable=True)
    publication_place = db.Column(db.String(255), nullable=True)
    country = db.Column(db.String(100), nullable=True)
    language = db.Column(db.String(100), nullable=True)
    pages = db.Column(db.Integer, nullable=True)
    price = db.Column(db.Float, nullable=True)
    dimensions = db.Column(db.String(100), nullable=True)
    classification = db.Column(db.String(100), nullable=True)
    call_number = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)
    is_public = db.Column(db.Boolean, default=True, nullable=False)
    quantity = db.Column(db.Integer, default=0, nullable=False)
    acquired_at = db.Column(db.DateTime, nullable=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    collection_id = db.Column(db.Integer, db.ForeignKey("collections.id"), nullable=True, index=True)
    material_type_id = db.Column(db.Integer, db.ForeignKey("material_types.id"), nullable=True, index=True)

    category = db.relationship("Category", back_populates="materials")
    collection = db.relationship("Collection", back_populates="materials")
    material_type = db.relationship("MaterialType", back_populates="materials")
    copies = db.relationship("Copy", back_populates="material", cascade="all, delete-orphan")
    subject_links = db.relationship("MaterialSubject", back_populates="material", cascade="all, delete-orphan")
    loans = db.relationship("Loan", back_populates="material")

    def __repr__(self):
        return f"<Material {self.title}>"

    @property
    def subjects(self):
        return [link.subject for link in self.subject_links]


class MaterialSubject(BaseModel):
    """Association between a material and one of its subjects"""

    __tablename__ = "material_subjects"

    material_id = db.Column(
        db.Integer, db.ForeignKey("materials.id", ondelete="CASCADE"), primary_key=True
    )
    subject_id = db.Column(
        db.Integer, db.ForeignKey("subjects.id", ondelete="CASCADE"), primary_key=True
    )

    material = db.relationship("Material", back_populates="subject_links")
    subject = db.relationship("Subject", back_populates="material_links")


class Copy(BaseModel):
    """Physical item of a material"""

    __tablename__ = "copies"

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(255), unique=True, nullable=True, index=True)
    material_id = db.Column(
        db.Integer, db.ForeignKey("materials.id", ondelete="CASCADE"), nullable=False, index=True
    )
    barcode = db.Column(db.String(100), nullable=True, index=True)
    description = db.Column(db.String(255), nullable=True)
    status = db.Column(
        Enum(CopyStatus, name="copy_status_enum"),
        default=CopyStatus.AVAILABLE,
        nullable=False,
        index=True,
    )
    status_changed_at = db.Column(db.DateTime, nullable=True)
    acquired_at = db.Column(db.DateTime, nullable=True)

    material = db.relationship("Material", back_populates="copies")
    loans = db.relationship("Loan", back_populates="copy", passive_deletes=True)

    __table_args__ = (Index("idx_copies_material_status", "material_id", "status"),)

    def __repr__(self):
        return f"<Copy {self.external_id or self.id}>"
