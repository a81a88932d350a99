from __future__ import annotations

from ..extensions import db
from ordering.time_utils import to_utc_z


class Company(db.Model):
    """
    Supplier / customer directory entry.

    Master-data maintenance happens elsewhere; the purchasing core only reads
    the name and the notification recipients of suppliers.

    `recipients` is a JSON list of {"name": str, "phone": str}.
    """
    __tablename__ = "companies"
    __table_args__ = (
        db.Index("ix_companies_type_active", "company_type", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.String(32), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    company_type = db.Column(db.String(16), nullable=False, default="supplier")  # supplier | customer
    recipients = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Company business_id={self.business_id!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "company_type": self.company_type,
            "recipients": list(self.recipients or []),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Catalog product as seen by purchasing.

    Prices are whole currency units (KRW has no minor unit).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_supplier", "category", "supplier_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    spec = db.Column(db.String(255), nullable=True)
    category = db.Column(db.String(64), nullable=True, index=True)

    # Directory business_id of the supplying company
    supplier_id = db.Column(db.String(32), nullable=True, index=True)

    purchase_price = db.Column(db.Integer, nullable=True)
    sale_price = db.Column(db.Integer, nullable=True)
    stock_quantity = db.Column(db.Integer, nullable=True)
    minimum_stock = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Product product_id={self.product_id!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "spec": self.spec,
            "category": self.category,
            "supplier_id": self.supplier_id,
            "purchase_price": self.purchase_price,
            "sale_price": self.sale_price,
            "stock_quantity": self.stock_quantity,
            "minimum_stock": self.minimum_stock,
            "is_active": self.is_active,
        }
