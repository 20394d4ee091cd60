import logging
import os
from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId
from fastapi import FastAPI, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pymongo import ReturnDocument

import payments
from auth import (
    create_access_token,
    get_current_user,
    get_password_hash,
    normalize_email,
    require_admin,
    role_for,
    verify_password,
)
from catalog import RES_PER_PAGE, build_product_query, paginate, sort_spec, total_pages
from config import LOG_LEVEL
from database import db, create_document
from errors import register_exception_handlers
from pricing import (
    DELIVERED,
    SHIPPED,
    InvalidTransition,
    cart_totals,
    check_transition,
    decrement_stock,
    find_line,
    money,
    order_prices,
)
from schemas import (
    User as UserSchema,
    Product as ProductSchema,
    ProductColor,
    ProductImage,
    ProductSize,
    Review as ReviewSchema,
    Order as OrderSchema,
    OrderItem as OrderItemSchema,
    PaymentInfo,
    ShippingInfo,
)
from settings_store import VersionConflict, get_settings, pricing_rules, update_settings

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Clothing Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


# Helpers
def to_dict(doc):
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def object_id(value: str, what: str) -> ObjectId:
    # a malformed id cannot name an existing document
    if not ObjectId.is_valid(value):
        raise HTTPException(status_code=404, detail=f"{what} not found")
    return ObjectId(value)


def utcnow():
    return datetime.now(timezone.utc)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"

class RegisterPayload(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)

class ProfilePayload(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None

class ProductPayload(BaseModel):
    name: str
    description: Optional[str] = None
    price: float = Field(0, ge=0)
    originalPrice: Optional[float] = Field(None, ge=0)
    discount: float = Field(0, ge=0, le=100)
    category: str
    subcategory: Optional[str] = None
    brand: Optional[str] = None
    stock: int = Field(0, ge=0)
    sizes: List[ProductSize] = []
    colors: List[ProductColor] = []
    images: List[ProductImage] = []
    isActive: bool = True
    isFeatured: bool = False

NULLABLE_PRODUCT_FIELDS = {"description", "originalPrice", "subcategory", "brand"}

class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    originalPrice: Optional[float] = Field(None, ge=0)
    discount: Optional[float] = Field(None, ge=0, le=100)
    category: Optional[str] = None
    subcategory: Optional[str] = None
    brand: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    sizes: Optional[List[ProductSize]] = None
    colors: Optional[List[ProductColor]] = None
    images: Optional[List[ProductImage]] = None
    isActive: Optional[bool] = None
    isFeatured: Optional[bool] = None

class ReviewPayload(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None

NULLABLE_SETTINGS_FIELDS = {"contactEmail", "phoneNumber", "address"}

class SettingsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    siteName: Optional[str] = None
    siteDescription: Optional[str] = None
    contactEmail: Optional[EmailStr] = None
    phoneNumber: Optional[str] = None
    address: Optional[str] = None
    currency: Optional[str] = None
    taxRate: Optional[float] = Field(None, ge=0, le=100)
    shippingFee: Optional[float] = Field(None, ge=0)
    freeShippingThreshold: Optional[float] = Field(None, ge=0)
    enableNotifications: Optional[bool] = None
    maintenanceMode: Optional[bool] = None
    version: Optional[int] = None  # last version the client saw

class CartInput(BaseModel):
    productId: str
    quantity: int = Field(1, ge=1)
    size: Optional[str] = None
    color: Optional[str] = None

class CartQuantity(BaseModel):
    quantity: int

class OrderLineInput(BaseModel):
    product: str
    quantity: int = Field(..., ge=1)
    size: Optional[str] = None
    color: Optional[str] = None

class CreateOrderPayload(BaseModel):
    orderItems: Optional[List[OrderLineInput]] = None  # omitted: check out the cart
    shippingInfo: ShippingInfo
    paymentInfo: PaymentInfo = Field(default_factory=PaymentInfo)

class OrderStatusPayload(BaseModel):
    orderStatus: str

class GatewayOrderPayload(BaseModel):
    amount: float
    currency: str = "INR"
    orderId: Optional[str] = None

class VerifyPaymentPayload(BaseModel):
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None


@app.get("/")
def root():
    return {"message": "Clothing Storefront API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
            response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
                response["connection_status"] = "Connected"
            except Exception as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"
    return response


# Auth
@app.post("/api/auth/register", response_model=Token)
def register(payload: RegisterPayload):
    email = normalize_email(payload.email)
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="Email already registered")
    role = role_for(email)
    doc = UserSchema(
        name=payload.name,
        email=email,
        password_hash=get_password_hash(payload.password),
        role=role,
        createdAt=utcnow(),
    )
    create_document("user", doc)
    logger.info("Registered %s with role %s", email, role)
    return Token(access_token=create_access_token({"sub": email, "role": role}))


@app.post("/api/auth/login", response_model=Token)
def login(form_data: OAuth2PasswordRequestForm = Depends()):
    user = db["user"].find_one({"email": normalize_email(form_data.username)})
    if not user or not verify_password(form_data.password, user.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return Token(access_token=create_access_token({"sub": user["email"], "role": user.get("role", "user")}))


@app.get("/api/auth/me")
def get_profile(current_user = Depends(get_current_user)):
    user = db["user"].find_one({"_id": current_user["_id"]}, {"password_hash": 0})
    return {"success": True, "data": to_dict(user)}


@app.put("/api/auth/me")
def update_profile(payload: ProfilePayload, current_user = Depends(get_current_user)):
    update = {k: v for k, v in payload.model_dump().items() if v is not None}
    if update:
        update["updatedAt"] = utcnow()
        db["user"].update_one({"_id": current_user["_id"]}, {"$set": update})
    user = db["user"].find_one({"_id": current_user["_id"]}, {"password_hash": 0})
    return {"success": True, "data": to_dict(user)}


# Settings
@app.get("/api/settings/maintenance")
def maintenance_status():
    return {"success": True, "maintenanceMode": get_settings().maintenanceMode}


@app.get("/api/settings")
def read_settings(_ = Depends(require_admin)):
    return {"success": True, "data": get_settings().model_dump()}


@app.put("/api/settings")
def write_settings(payload: SettingsUpdate, current_user = Depends(require_admin)):
    patch = {
        k: v for k, v in payload.model_dump(exclude_unset=True, exclude={"version"}).items()
        if v is not None or k in NULLABLE_SETTINGS_FIELDS
    }
    try:
        settings = update_settings(patch, expected_version=payload.version)
    except VersionConflict as e:
        raise HTTPException(status_code=409, detail=str(e))
    logger.info("Settings saved by %s", current_user["email"])
    return {"success": True, "data": settings.model_dump()}


# Products
@app.get("/api/products")
def list_products(
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    brand: Optional[str] = None,
    size: Optional[str] = None,
    color: Optional[str] = None,
    minPrice: Optional[float] = None,
    maxPrice: Optional[float] = None,
    rating: Optional[float] = None,
    keyword: Optional[str] = None,
    featured: Optional[bool] = None,
    sort: Optional[str] = None,
    page: int = 1,
    limit: int = RES_PER_PAGE,
):
    query = build_product_query(
        category=category,
        subcategory=subcategory,
        brand=brand,
        size=size,
        color=color,
        min_price=minPrice,
        max_price=maxPrice,
        rating=rating,
        keyword=keyword,
        featured=featured,
    )
    skip, limit = paginate(page, limit)
    cursor = db["product"].find(query).sort(sort_spec(sort)).skip(skip).limit(limit)
    results = [to_dict(p) for p in cursor]
    total = db["product"].count_documents(query)
    return {
        "success": True,
        "count": len(results),
        "total": total,
        "resPerPage": limit,
        "currentPage": max(page, 1),
        "totalPages": total_pages(total, limit),
        "data": results,
    }


@app.get("/api/products/featured")
def featured_products():
    cursor = db["product"].find({"isFeatured": True, "isActive": True}).sort(sort_spec("newest")).limit(8)
    results = [to_dict(p) for p in cursor]
    return {"success": True, "count": len(results), "data": results}


@app.get("/api/products/search")
def search_products(keyword: Optional[str] = None):
    if not keyword or not keyword.strip():
        raise HTTPException(status_code=400, detail="Please provide a search keyword")
    cursor = db["product"].find(build_product_query(keyword=keyword)).sort(sort_spec("newest"))
    results = [to_dict(p) for p in cursor]
    return {"success": True, "count": len(results), "data": results}


@app.get("/api/products/category/{category}")
def products_by_category(category: str):
    cursor = db["product"].find(build_product_query(category=category)).sort(sort_spec("newest"))
    results = [to_dict(p) for p in cursor]
    return {"success": True, "count": len(results), "data": results}


@app.get("/api/products/{pid}")
def product_detail(pid: str):
    p = db["product"].find_one({"_id": object_id(pid, "Product")})
    if not p:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"success": True, "data": to_dict(p)}


@app.post("/api/products", status_code=201)
def create_product(payload: ProductPayload, _ = Depends(require_admin)):
    product = ProductSchema(**payload.model_dump())
    product_id = create_document("product", product)
    logger.info("Created product %s (%s)", product_id, product.name)
    return {"success": True, "data": to_dict(db["product"].find_one({"_id": ObjectId(product_id)}))}


@app.put("/api/products/{pid}")
def update_product(pid: str, payload: ProductUpdate, _ = Depends(require_admin)):
    oid = object_id(pid, "Product")
    existing = db["product"].find_one({"_id": oid})
    if not existing:
        raise HTTPException(status_code=404, detail="Product not found")
    # null clears an optional field; on a required one it means "leave as is"
    patch = {
        k: v for k, v in payload.model_dump(exclude_unset=True).items()
        if v is not None or k in NULLABLE_PRODUCT_FIELDS
    }
    merged = {**existing, **patch}
    if "price" in patch and "originalPrice" not in patch:
        # an explicit selling price replaces the list-price derivation
        merged["originalPrice"] = None
    product = ProductSchema(**merged)
    update = product.model_dump(exclude={"createdAt"})
    update["updatedAt"] = utcnow()
    db["product"].update_one({"_id": oid}, {"$set": update})
    return {"success": True, "data": to_dict(db["product"].find_one({"_id": oid}))}


@app.delete("/api/products/{pid}")
def delete_product(pid: str, _ = Depends(require_admin)):
    res = db["product"].delete_one({"_id": object_id(pid, "Product")})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    logger.info("Deleted product %s", pid)
    return {"success": True, "message": "Product deleted successfully"}


@app.post("/api/products/{pid}/reviews")
def create_review(pid: str, payload: ReviewPayload, current_user = Depends(get_current_user)):
    oid = object_id(pid, "Product")
    product = db["product"].find_one({"_id": oid})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    user_id = str(current_user["_id"])
    reviews = product.get("reviews", [])
    if any(r.get("user") == user_id for r in reviews):
        raise HTTPException(status_code=400, detail="Product already reviewed")
    review = ReviewSchema(user=user_id, name=current_user.get("name", ""), rating=payload.rating, comment=payload.comment)
    reviews.append(review.model_dump())
    db["product"].update_one({"_id": oid}, {"$set": {
        "reviews": reviews,
        "numOfReviews": len(reviews),
        "ratings": sum(r["rating"] for r in reviews) / len(reviews),
    }})
    return {"success": True, "message": "Review added successfully"}


# Cart
def load_cart(user_id: str):
    return db["cart"].find_one({"user": user_id})


def cart_response(cart, user_id: str):
    items = cart.get("items", []) if cart else []
    data = {"id": str(cart["_id"]) if cart else None, "user": user_id, "items": items}
    data.update(cart_totals(items))
    return {"success": True, "data": data}


@app.get("/api/cart")
def get_cart(current_user = Depends(get_current_user)):
    user_id = str(current_user["_id"])
    return cart_response(load_cart(user_id), user_id)


@app.post("/api/cart")
def add_to_cart(payload: CartInput, current_user = Depends(get_current_user)):
    user_id = str(current_user["_id"])
    p = db["product"].find_one({"_id": object_id(payload.productId, "Product"), "isActive": True})
    if not p:
        raise HTTPException(status_code=404, detail="Product not found")

    cart = load_cart(user_id)
    if not cart:
        create_document("cart", {"user": user_id, "items": []})
        cart = load_cart(user_id)

    items = cart.get("items", [])
    line = find_line(items, payload.productId, payload.size, payload.color)
    if line:
        line["quantity"] += payload.quantity
    else:
        items.append({
            "itemId": str(ObjectId()),
            "product": payload.productId,
            "name": p["name"],
            "image": (p.get("images") or [{}])[0].get("url"),
            "quantity": payload.quantity,
            "size": payload.size,
            "color": payload.color,
            "price": p["price"],
        })
    db["cart"].update_one({"_id": cart["_id"]}, {"$set": {"items": items, "updatedAt": utcnow()}})
    return cart_response(load_cart(user_id), user_id)


@app.put("/api/cart/{item_id}")
def update_cart_item(item_id: str, payload: CartQuantity, current_user = Depends(get_current_user)):
    if payload.quantity < 1:
        raise HTTPException(status_code=400, detail="Quantity must be at least 1")
    user_id = str(current_user["_id"])
    cart = load_cart(user_id)
    items = cart.get("items", []) if cart else []
    line = next((i for i in items if i["itemId"] == item_id), None)
    if not line:
        raise HTTPException(status_code=404, detail="Cart item not found")
    line["quantity"] = payload.quantity
    db["cart"].update_one({"_id": cart["_id"]}, {"$set": {"items": items, "updatedAt": utcnow()}})
    return cart_response(load_cart(user_id), user_id)


@app.delete("/api/cart/{item_id}")
def remove_cart_item(item_id: str, current_user = Depends(get_current_user)):
    user_id = str(current_user["_id"])
    cart = load_cart(user_id)
    items = cart.get("items", []) if cart else []
    remaining = [i for i in items if i["itemId"] != item_id]
    if len(remaining) == len(items):
        raise HTTPException(status_code=404, detail="Cart item not found")
    db["cart"].update_one({"_id": cart["_id"]}, {"$set": {"items": remaining, "updatedAt": utcnow()}})
    return cart_response(load_cart(user_id), user_id)


@app.delete("/api/cart")
def clear_cart(current_user = Depends(get_current_user)):
    user_id = str(current_user["_id"])
    db["cart"].update_one({"user": user_id}, {"$set": {"items": [], "updatedAt": utcnow()}})
    return cart_response(load_cart(user_id), user_id)


# Orders
@app.post("/api/orders", status_code=201)
def create_order(payload: CreateOrderPayload, current_user = Depends(get_current_user)):
    user_id = str(current_user["_id"])
    from_cart = payload.orderItems is None
    if from_cart:
        cart = load_cart(user_id)
        lines = [OrderLineInput(**i) for i in (cart.get("items", []) if cart else [])]
    else:
        lines = payload.orderItems
    if not lines:
        raise HTTPException(status_code=400, detail="No order items")

    # resolve every product first so a missing one leaves nothing behind
    order_items: List[OrderItemSchema] = []
    items_price = 0.0
    for line in lines:
        p = db["product"].find_one({"_id": object_id(line.product, f"Product {line.product}")})
        if not p:
            raise HTTPException(status_code=404, detail=f"Product {line.product} not found")
        items_price += p["price"] * line.quantity
        order_items.append(OrderItemSchema(
            product=line.product,
            name=p["name"],
            price=p["price"],
            quantity=line.quantity,
            size=line.size,
            color=line.color,
            image=(p.get("images") or [{}])[0].get("url"),
        ))

    rules = pricing_rules()
    prices = order_prices(items_price, rules["tax_rate"], rules["shipping_fee"], rules["free_shipping_threshold"])
    order = OrderSchema(
        user=user_id,
        orderItems=order_items,
        shippingInfo=payload.shippingInfo,
        paymentInfo=payload.paymentInfo,
        **prices,
    )
    order_id = create_document("order", order)
    if from_cart:
        db["cart"].update_one({"user": user_id}, {"$set": {"items": [], "updatedAt": utcnow()}})
    logger.info("Order %s placed by %s for %s", order_id, current_user["email"], prices["totalPrice"])
    return {"success": True, "data": to_dict(db["order"].find_one({"_id": ObjectId(order_id)}))}


@app.get("/api/orders/myorders")
def my_orders(current_user = Depends(get_current_user)):
    cursor = db["order"].find({"user": str(current_user["_id"])}).sort([("createdAt", -1), ("_id", -1)])
    orders = [to_dict(o) for o in cursor]
    return {"success": True, "count": len(orders), "data": orders}


@app.get("/api/orders")
def all_orders(_ = Depends(require_admin)):
    orders = [to_dict(o) for o in db["order"].find().sort([("createdAt", -1), ("_id", -1)])]
    total_amount = money(sum(o.get("totalPrice", 0) for o in orders))
    return {"success": True, "count": len(orders), "totalAmount": total_amount, "data": orders}


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, current_user = Depends(get_current_user)):
    order = db["order"].find_one({"_id": object_id(order_id, "Order")})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order["user"] != str(current_user["_id"]) and current_user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Not authorized to access this order")
    return {"success": True, "data": to_dict(order)}


def ship_line(item: dict) -> None:
    if not ObjectId.is_valid(item["product"]):
        return
    pid = ObjectId(item["product"])
    p = db["product"].find_one({"_id": pid})
    if not p:
        logger.warning("Product %s gone, stock not decremented", item["product"])
        return
    update = decrement_stock(p, item["quantity"], item.get("size"))
    if update is None:
        logger.warning("Not enough stock of %s to ship %s, left unchanged", item["product"], item["quantity"])
        return
    res = db["product"].update_one({"_id": pid, "stock": p.get("stock", 0)}, {"$set": update})
    if res.matched_count == 0:
        logger.warning("Stock of %s changed during shipment, left unchanged", item["product"])


@app.put("/api/orders/{order_id}")
def update_order_status(order_id: str, payload: OrderStatusPayload, current_user = Depends(require_admin)):
    oid = object_id(order_id, "Order")
    order = db["order"].find_one({"_id": oid})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    try:
        check_transition(order["orderStatus"], payload.orderStatus)
    except InvalidTransition as e:
        raise HTTPException(status_code=400, detail=str(e))

    if payload.orderStatus == SHIPPED:
        for item in order["orderItems"]:
            ship_line(item)

    update = {"orderStatus": payload.orderStatus, "updatedAt": utcnow()}
    if payload.orderStatus == DELIVERED:
        update["deliveredAt"] = utcnow()
    db["order"].update_one({"_id": oid}, {"$set": update})
    logger.info("Order %s: %s -> %s by %s", order_id, order["orderStatus"], payload.orderStatus, current_user["email"])
    return {"success": True, "data": to_dict(db["order"].find_one({"_id": oid}))}


@app.delete("/api/orders/{order_id}")
def delete_order(order_id: str, _ = Depends(require_admin)):
    res = db["order"].delete_one({"_id": object_id(order_id, "Order")})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Order not found")
    return {"success": True, "message": "Order deleted successfully"}


# Payments
@app.post("/api/payment/create-razorpay")
def create_razorpay_order(payload: GatewayOrderPayload, current_user = Depends(get_current_user)):
    if payload.amount <= 0:
        raise HTTPException(status_code=400, detail="Invalid amount. Amount must be greater than 0")
    order = None
    if payload.orderId:
        order = db["order"].find_one({"_id": object_id(payload.orderId, "Order"), "user": str(current_user["_id"])})
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")
    try:
        response = payments.create_gateway_order(payload.amount, payload.currency)
    except payments.PaymentGatewayNotConfigured as e:
        raise HTTPException(status_code=500, detail=str(e))
    except Exception:
        logger.exception("Gateway order creation failed")
        raise HTTPException(status_code=500, detail="Error creating Razorpay order")
    if order:
        db["order"].update_one({"_id": order["_id"]}, {"$set": {"paymentInfo.razorpayOrderId": response["id"]}})
    return {"success": True, "id": response["id"], "amount": response["amount"], "currency": response["currency"]}


@app.post("/api/payment/verify-razorpay")
def verify_razorpay_payment(payload: VerifyPaymentPayload, current_user = Depends(get_current_user)):
    if not (payload.razorpay_order_id and payload.razorpay_payment_id and payload.razorpay_signature):
        raise HTTPException(status_code=400, detail="Missing required payment verification parameters")
    try:
        valid = payments.verify_payment_signature(
            payload.razorpay_order_id, payload.razorpay_payment_id, payload.razorpay_signature
        )
    except payments.PaymentGatewayNotConfigured as e:
        raise HTTPException(status_code=500, detail=str(e))
    if not valid:
        logger.warning("Rejected payment signature for gateway order %s", payload.razorpay_order_id)
        raise HTTPException(status_code=400, detail="Invalid payment signature")

    order = db["order"].find_one_and_update(
        {"paymentInfo.razorpayOrderId": payload.razorpay_order_id},
        {"$set": {
            "paymentInfo.status": "paid",
            "paymentInfo.id": payload.razorpay_payment_id,
            "paidAt": utcnow(),
        }},
        return_document=ReturnDocument.AFTER,
    )
    if not order:
        return {"success": True, "message": "Payment verified successfully, but no matching order found"}
    logger.info("Payment %s verified for order %s", payload.razorpay_payment_id, order["_id"])
    return {"success": True, "message": "Payment verified successfully", "order": to_dict(order)}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
