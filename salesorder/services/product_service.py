"""Product and price list maintenance."""
import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from salesorder.exceptions import NotFoundError, ValidationFailed, Violation
from salesorder.models import PriceList, Product, ProductType
from salesorder.models.records import Actor, PriceList as PriceListRecord
from salesorder.services.permission_service import Permission, require_any_permission, require_permission
from salesorder.services.pricing_service import MAX_LIST_PRICE, validate_price_hierarchy
from salesorder.utils.formatters import money_idr
from salesorder.utils.number_format import parse_decimal

logger = logging.getLogger(__name__)

PRICE_FIELDS = (
    ('grosir_price', 'grosirPrice'),
    ('semi_grosir_price', 'semiGrosirPrice'),
    ('retail_price', 'retailPrice'),
    ('modern_price', 'modernPrice'),
)


def check_price_list(price_list: PriceListRecord) -> PriceListRecord:
    """
    Normalize and validate a four-tier price list.

    Every tier must be positive and at most MAX_LIST_PRICE, and the tiers must
    follow grosir <= semi grosir <= retail <= modern.

    Raises:
        ValidationFailed: with one violation per offending tier
    """
    violations = []
    values = {}
    for attr, field in PRICE_FIELDS:
        try:
            value = parse_decimal(getattr(price_list, attr))
        except ValueError:
            violations.append(Violation(('priceList', field), 'Harga harus berupa angka'))
            continue
        if value <= 0:
            violations.append(Violation(('priceList', field), 'Harga harus lebih dari 0'))
        elif value > MAX_LIST_PRICE:
            violations.append(Violation(
                ('priceList', field), f'Harga maksimal {money_idr(MAX_LIST_PRICE)}'
            ))
        values[attr] = value

    if violations:
        raise ValidationFailed(violations)

    normalized = PriceListRecord(**values)
    if not validate_price_hierarchy(normalized):
        raise ValidationFailed([Violation(
            ('priceList',), 'Harga harus mengikuti hierarki: Grosir ≤ Semi Grosir ≤ Retail ≤ Modern'
        )])
    return normalized


def create_product(session: Session, actor: Actor, name: str, price_list: PriceListRecord,
                   code: Optional[str] = None, description: Optional[str] = None,
                   category: ProductType = ProductType.BISCUIT) -> Product:
    """Create a product together with its price list."""
    require_permission(actor, Permission.PRODUCT_CREATE)

    if not name or not name.strip():
        raise ValidationFailed([Violation(('name',), 'Nama produk wajib diisi')])
    prices = check_price_list(price_list)

    try:
        product = Product(
            name=name.strip(),
            code=code.strip() if code else None,
            description=description,
            category=ProductType(category).value,
        )
        product.price_list = PriceList(
            grosir_price=prices.grosir_price,
            semi_grosir_price=prices.semi_grosir_price,
            retail_price=prices.retail_price,
            modern_price=prices.modern_price,
        )
        session.add(product)
        session.commit()
        logger.info(f"Product created: {product.id} ({product.name}) by user {actor.id}")
        return product
    except Exception:
        session.rollback()
        raise


def update_price_list(session: Session, actor: Actor, product_id: str,
                      price_list: PriceListRecord) -> PriceList:
    """Replace the four tiers of a product's price list."""
    require_any_permission(actor, [Permission.PRODUCT_UPDATE, Permission.PRODUCT_MANAGE_PRICES])

    product = session.get(Product, product_id)
    if not product:
        raise NotFoundError(f'Produk {product_id} tidak ditemukan')
    prices = check_price_list(price_list)

    try:
        row = product.price_list or PriceList(product_id=product.id)
        row.grosir_price = prices.grosir_price
        row.semi_grosir_price = prices.semi_grosir_price
        row.retail_price = prices.retail_price
        row.modern_price = prices.modern_price
        product.price_list = row
        session.commit()
        logger.info(f"Price list updated for product {product.id} by user {actor.id}")
        return row
    except Exception:
        session.rollback()
        raise


def load_price_lists(session: Session, product_ids: Iterable[str]) -> Dict[str, PriceListRecord]:
    """Price lists of the active products among product_ids, keyed by product id."""
    ids = [pid for pid in set(product_ids) if pid]
    if not ids:
        return {}
    rows: List[PriceList] = session.query(PriceList).join(Product).filter(
        PriceList.product_id.in_(ids),
        Product.is_active.is_(True)
    ).all()
    return {row.product_id: row.to_record() for row in rows}
