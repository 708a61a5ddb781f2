"""Domain enums shared by the engine and the persistence models."""
import enum


class UserRole(str, enum.Enum):
    """User role. Hierarchy: ADMIN > MANAGER > SALES > BASIC."""
    ADMIN = 'ADMIN'      # Full system access
    MANAGER = 'MANAGER'  # Reporting and analytics (read-only)
    SALES = 'SALES'      # Create orders and perform visits
    BASIC = 'BASIC'      # Limited dashboard access


class OrderStatus(str, enum.Enum):
    """Order lifecycle status."""
    DRAFT = 'DRAFT'                    # Initial status, editable
    DISETUJUI = 'DISETUJUI'            # Approved by admin
    TERKIRIM = 'TERKIRIM'              # Delivered, terminal
    TIDAK_TERKIRIM = 'TIDAK_TERKIRIM'  # Delivery failed, may be re-approved


class PriceType(str, enum.Enum):
    """Price tier used for an order item."""
    GROSIR = 'GROSIR'            # Wholesale
    SEMI_GROSIR = 'SEMI_GROSIR'  # Semi-wholesale
    RETAIL = 'RETAIL'
    MODERN = 'MODERN'            # Modern retail (default)
    CUSTOM = 'CUSTOM'            # Ad-hoc price, reason required


class DiscountType(str, enum.Enum):
    """Discount kind for items and orders."""
    PERCENTAGE = 'PERCENTAGE'  # 0-100
    FIXED = 'FIXED'            # Nominal amount


class StoreType(str, enum.Enum):
    """Store verification status."""
    BARU = 'BARU'
    TERVERIFIKASI = 'TERVERIFIKASI'
    TIDAK_AKTIF = 'TIDAK_AKTIF'


class ProductType(str, enum.Enum):
    BISCUIT = 'BISCUIT'
    CANDY = 'CANDY'


ORDER_STATUS_LABELS = {
    OrderStatus.DRAFT: 'Draft',
    OrderStatus.DISETUJUI: 'Disetujui',
    OrderStatus.TERKIRIM: 'Terkirim',
    OrderStatus.TIDAK_TERKIRIM: 'Tidak Terkirim',
}

PRICE_TYPE_LABELS = {
    PriceType.GROSIR: 'Grosir',
    PriceType.SEMI_GROSIR: 'Semi Grosir',
    PriceType.RETAIL: 'Retail',
    PriceType.MODERN: 'Modern',
    PriceType.CUSTOM: 'Kustom',
}
