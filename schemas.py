"""
Database Schemas for the Marketplace

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name
(User -> "user", SellerApplication -> "sellerapplication").
Embedded models (Address, OrderItem, ...) live inside their parent document.
"""
from datetime import datetime
from typing import List, Literal, Optional

from bson.objectid import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field

ROLES = ("user", "seller", "admin")
SIZES = ("XS", "S", "M", "L", "XL", "XXL", "XXXL")
PRODUCT_STATUSES = ("draft", "active", "inactive", "out_of_stock", "archived")
ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled", "returned")
PAYMENT_METHODS = ("cod", "razorpay", "gokwik", "crypto")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded", "partially_refunded")
SHIPPING_METHODS = ("standard", "express", "overnight")
COUPON_TYPES = ("percentage", "fixed", "shipping")
APPLICATION_STATUSES = ("pending", "under_review", "approved", "rejected", "requires_changes")

Role = Literal[ROLES]
Size = Literal[SIZES]
ProductStatus = Literal[PRODUCT_STATUSES]
OrderStatus = Literal[ORDER_STATUSES]
PaymentMethod = Literal[PAYMENT_METHODS]
PaymentStatus = Literal[PAYMENT_STATUSES]
ShippingMethod = Literal[SHIPPING_METHODS]
CouponType = Literal[COUPON_TYPES]
ApplicationStatus = Literal[APPLICATION_STATUSES]

PINCODE_PATTERN = r"^\d{6}$"


def new_id() -> str:
    return str(ObjectId())


class MongoModel(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)


# ----------------------- User -----------------------
class Address(MongoModel):
    id: str = Field(default_factory=new_id)
    type: Literal["home", "work", "other"] = "home"
    is_default: bool = False
    street: str
    city: str
    state: str
    country: str = "India"
    postal_code: str
    landmark: Optional[str] = None


class SellerApplicationSummary(MongoModel):
    status: ApplicationStatus = "pending"
    application_id: Optional[str] = None
    business_name: Optional[str] = None
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None


class User(MongoModel):
    name: str = Field(..., description="Full name")
    email: EmailStr
    password_hash: str = Field(..., description="bcrypt hash")
    phone: Optional[str] = None
    role: Role = "user"
    is_active: bool = True
    is_email_verified: bool = False
    avatar: Optional[str] = None
    addresses: List[Address] = []
    preferences: dict = Field(default_factory=lambda: {"newsletter": True, "notifications": True})
    seller_application: Optional[SellerApplicationSummary] = None
    password_reset_token: Optional[str] = None
    password_reset_expires: Optional[datetime] = None
    failed_login_attempts: int = 0
    account_locked_until: Optional[datetime] = None
    last_login: Optional[datetime] = None


# ----------------------- Catalog -----------------------
class ProductImage(MongoModel):
    url: str
    alt: str = ""
    is_primary: bool = False
    order: int = 0


class SizeStock(MongoModel):
    size: Size
    stock: int = Field(0, ge=0)


class Product(MongoModel):
    name: str
    description: str
    short_description: Optional[str] = None
    price: float = Field(..., ge=0)
    discounted_price: Optional[float] = Field(None, ge=0)
    category: ObjectId
    seller: ObjectId
    brand: Optional[str] = None
    images: List[ProductImage] = []
    sizes: List[SizeStock] = []
    colors: List[str] = []
    status: ProductStatus = "draft"
    is_approved: bool = True
    approved_at: Optional[datetime] = None
    featured: bool = False
    sku: Optional[str] = None
    low_stock_threshold: int = 10
    weight: Optional[float] = None
    views: int = 0
    sales: int = 0
    average_rating: float = 0
    review_count: int = 0
    created_by: Optional[ObjectId] = None
    updated_by: Optional[ObjectId] = None


class Commission(MongoModel):
    rate: float = Field(0, ge=0, le=100)
    type: Literal["percentage", "fixed"] = "percentage"


class Category(MongoModel):
    name: str
    slug: str
    description: Optional[str] = None
    parent: Optional[ObjectId] = None
    ancestors: List[ObjectId] = []
    level: int = 0
    order: int = 0
    is_active: bool = True
    is_featured: bool = False
    image: Optional[str] = None
    commission: Commission = Field(default_factory=Commission)
    created_by: Optional[ObjectId] = None
    updated_by: Optional[ObjectId] = None


# ----------------------- Orders -----------------------
class ShippingAddress(MongoModel):
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    address_line1: str = Field(..., min_length=1)
    address_line2: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    pincode: str = Field(..., pattern=PINCODE_PATTERN)
    country: str = "India"


class OrderItem(MongoModel):
    id: str = Field(default_factory=new_id)
    product: ObjectId
    seller: ObjectId
    name: str
    image: str = ""
    price: float
    quantity: int = Field(..., ge=1)
    variants: dict = {}
    subtotal: float
    status: OrderStatus = "pending"


class PaymentDetails(MongoModel):
    transaction_id: Optional[str] = None
    payment_id: Optional[str] = None
    gateway_response: Optional[dict] = None
    paid_at: Optional[datetime] = None
    failure_reason: Optional[str] = None


class ShippingInfo(MongoModel):
    method: ShippingMethod = "standard"
    provider: Optional[str] = None
    tracking_number: Optional[str] = None
    nimbus_order_id: Optional[str] = None
    status: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    tracking_url: Optional[str] = None


class Order(MongoModel):
    order_number: str
    customer: ObjectId
    items: List[OrderItem]
    sellers: List[ObjectId] = []
    subtotal: float
    shipping_cost: float = 0
    tax: float = 0
    discount: float = 0
    total: float
    coupon_code: Optional[str] = None
    shipping_address: Optional[ShippingAddress] = None
    billing_address: Optional[ShippingAddress] = None
    payment_method: PaymentMethod = "razorpay"
    payment_status: PaymentStatus = "pending"
    payment_details: PaymentDetails = Field(default_factory=PaymentDetails)
    status: OrderStatus = "pending"
    shipping: ShippingInfo = Field(default_factory=ShippingInfo)
    placed_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    customer_notes: Optional[str] = None
    admin_notes: Optional[str] = None
    cancellation_reason: Optional[str] = None


# ----------------------- Coupons & Reviews -----------------------
class Coupon(MongoModel):
    code: str = Field(..., min_length=3, max_length=20)
    description: str
    type: CouponType
    value: float = Field(..., ge=0)
    minimum_order_amount: float = 0
    maximum_discount: Optional[float] = None
    usage_limit: Optional[int] = None
    used_count: int = 0
    valid_from: datetime
    valid_until: datetime
    is_active: bool = True
    applicable_products: List[ObjectId] = []
    applicable_categories: List[ObjectId] = []
    created_by: Optional[ObjectId] = None
    created_by_role: Optional[Role] = None


class Review(MongoModel):
    user: ObjectId
    product: ObjectId
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=1000)
    verified: bool = False


# ----------------------- Seller onboarding -----------------------
class SellerApplication(MongoModel):
    user_id: ObjectId
    application_id: str
    status: ApplicationStatus = "pending"
    business_name: str
    business_type: str
    business_category: str
    business_description: str
    established_year: int
    business_email: EmailStr
    business_phone: str
    business_address: str
    city: str
    state: str
    pincode: str
    has_physical_store: bool = False
    gst_number: Optional[str] = None
    pan_number: Optional[str] = None
    bank_account_number: str
    bank_ifsc: Optional[str] = None
    bank_name: str
    account_holder_name: str
    expected_monthly_revenue: Optional[str] = None
    product_categories: List[str] = []
    agree_to_terms: bool
    reviewed_by: Optional[ObjectId] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    submitted_at: Optional[datetime] = None
