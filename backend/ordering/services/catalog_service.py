# Overview: Read-only product catalog and company directory lookups.

"""
Catalog / Directory lookups

Master-data maintenance is out of scope; the purchasing core only reads
products and companies through this module. Lookups return frozen snapshots
so aggregation can fold over them without touching the session.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from ..extensions import db
from ..errors import NotFoundError
from ..models import Company, Product


@dataclass(frozen=True)
class ProductInfo:
    product_id: str
    name: str
    spec: str | None
    category: str | None
    supplier_id: str | None
    purchase_price: int | None = None
    sale_price: int | None = None
    stock_quantity: int | None = None
    minimum_stock: int | None = None
    is_active: bool = True

    @classmethod
    def from_model(cls, product: Product) -> "ProductInfo":
        return cls(
            product_id=product.product_id,
            name=product.name,
            spec=product.spec,
            category=product.category,
            supplier_id=product.supplier_id,
            purchase_price=product.purchase_price,
            sale_price=product.sale_price,
            stock_quantity=product.stock_quantity,
            minimum_stock=product.minimum_stock,
            is_active=bool(product.is_active),
        )


@dataclass(frozen=True)
class Recipient:
    name: str
    phone: str


@dataclass(frozen=True)
class CompanyInfo:
    business_id: str
    name: str
    recipients: tuple[Recipient, ...] = field(default_factory=tuple)

    @classmethod
    def from_model(cls, company: Company) -> "CompanyInfo":
        recipients = tuple(
            Recipient(name=str(r.get("name") or ""), phone=str(r.get("phone") or ""))
            for r in (company.recipients or [])
            if r.get("phone")
        )
        return cls(business_id=company.business_id, name=company.name, recipients=recipients)

    def recipients_as_dicts(self) -> list[dict]:
        return [{"name": r.name, "phone": r.phone} for r in self.recipients]


def find_product(product_id: str) -> ProductInfo | None:
    product = db.session.query(Product).filter_by(product_id=product_id).first()
    return ProductInfo.from_model(product) if product else None


def get_product(product_id: str) -> ProductInfo:
    info = find_product(product_id)
    if info is None:
        raise NotFoundError(f"Product {product_id} not found")
    return info


def find_company(business_id: str) -> CompanyInfo | None:
    company = db.session.query(Company).filter_by(business_id=business_id).first()
    return CompanyInfo.from_model(company) if company else None


def get_company(business_id: str) -> CompanyInfo:
    info = find_company(business_id)
    if info is None:
        raise NotFoundError(f"Company {business_id} not found")
    return info


def resolve_products(product_ids: Iterable[str]) -> dict[str, ProductInfo]:
    """Bulk lookup. Missing ids are simply absent from the result."""
    ids = sorted({pid for pid in product_ids if pid})
    if not ids:
        return {}
    rows = db.session.query(Product).filter(Product.product_id.in_(ids)).all()
    return {row.product_id: ProductInfo.from_model(row) for row in rows}


def resolve_companies(business_ids: Iterable[str]) -> dict[str, CompanyInfo]:
    ids = sorted({bid for bid in business_ids if bid})
    if not ids:
        return {}
    rows = db.session.query(Company).filter(Company.business_id.in_(ids)).all()
    return {row.business_id: CompanyInfo.from_model(row) for row in rows}
