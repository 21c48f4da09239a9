from fastapi import FastAPI, Depends, HTTPException, Request, Response, status, Header, Cookie, Query
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List, Optional
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
import logging
import os
import uvicorn

import models
import auth
import orders
from database import engine, get_db, init_seed_data, wait_for_db
from schemas import (
    UserRegister,
    UserLogin,
    UserSummary,
    UserResponse,
    ProfileUpdate,
    PasswordChange,
    RoleUpdate,
    ProductCreate,
    ProductUpdate,
    ProductResponse,
    OrderCreate,
    OrderResponse,
    OrderStatusUpdate,
    DashboardStats,
    TopProduct,
    DailySales,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("KasirAPI")

LOW_STOCK_THRESHOLD = 5

app = FastAPI(title="Kasir POS API")


origins = [
    "http://localhost",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
if os.getenv("CORS_ORIGINS"):
    origins = [origin.strip() for origin in os.getenv("CORS_ORIGINS").split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup_event():
    if wait_for_db():
        try:
            logger.info("Creating database tables...")
            models.Base.metadata.create_all(bind=engine)
            init_seed_data()
            logger.info("Database initialized")
        except Exception as e:
            logger.error(f"Error while initializing the database: {e}")
    else:
        logger.error("Database was not ready at startup")


def _validation_message(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = error.get("msg", "Invalid value").replace("Value error, ", "")
        messages.append(f"{field}: {message}" if field else message)
    return "; ".join(messages) or "Invalid request"


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": _validation_message(exc)})


async def get_current_user(
    authorization: Optional[str] = Header(None),
    auth_token: Optional[str] = Cookie(None),
    db: Session = Depends(get_db),
):
    # Cookie first, then the Bearer header if the cookie is missing or stale
    tokens = [auth_token] if auth_token else []
    if authorization and authorization.startswith("Bearer "):
        tokens.append(authorization.replace("Bearer ", ""))
    if not tokens:
        raise HTTPException(status_code=401, detail="Not authenticated")

    payload = next((p for p in map(auth.verify_token, tokens) if p), None)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")

    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    return user


def require_admin(current_user: models.User = Depends(get_current_user)):
    # Role comes from the database row, not from the token claim
    if current_user.role != models.Role.ADMIN.value:
        raise HTTPException(status_code=403, detail="Forbidden")
    return current_user


def _ensure_not_last_admin(db: Session, user: models.User, new_role: str):
    if user.role == models.Role.ADMIN.value and new_role != models.Role.ADMIN.value:
        admin_count = db.query(models.User).filter(models.User.role == models.Role.ADMIN.value).count()
        if admin_count <= 1:
            raise HTTPException(status_code=400, detail="Cannot demote the last administrator account")


@app.get("/")
def read_root():
    return {"message": "Kasir POS API is working!"}


@app.get("/health")
def health_check():
    return {"status": "ok", "message": "API is running"}


# ---------- Auth ----------

@app.post("/auth/register", status_code=status.HTTP_201_CREATED)
def register(user: UserRegister, db: Session = Depends(get_db)):
    if db.query(models.User).filter(models.User.email == user.email).first():
        raise HTTPException(status_code=400, detail="Email already registered")
    if db.query(models.User).filter(models.User.username == user.username).first():
        raise HTTPException(status_code=400, detail="Username already registered")

    try:
        db_user = models.User(
            email=user.email,
            username=user.username,
            password_hash=auth.get_password_hash(user.password),
            role=models.Role.CASHIER.value,
        )
        db.add(db_user)
        db.commit()
        db.refresh(db_user)
    except IntegrityError:
        # Lost a race with a concurrent registration of the same email or username
        db.rollback()
        raise HTTPException(status_code=400, detail="Email or username already registered")
    except Exception as e:
        db.rollback()
        logger.exception(f"Register error: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    logger.info(f"User registered: {db_user.id} ({db_user.username})")
    return {"message": "User registered successfully", "user": UserResponse.model_validate(db_user)}


@app.post("/auth/login")
def login(credentials: UserLogin, response: Response, db: Session = Depends(get_db)):
    db_user = auth.authenticate_user(db, credentials.username, credentials.password)
    if not db_user:
        logger.info(f"Failed login for {credentials.username}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")

    auth.set_session_cookies(response, db_user)
    return {"message": "Login successful", "user": UserSummary.model_validate(db_user)}


@app.post("/auth/logout")
def logout(response: Response):
    auth.clear_session_cookies(response)
    return {"message": "Logged out"}


@app.post("/auth/change-password")
def change_password(password_data: PasswordChange, db: Session = Depends(get_db),
                    current_user: models.User = Depends(get_current_user)):
    if not auth.verify_password(password_data.current_password, current_user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    current_user.password_hash = auth.get_password_hash(password_data.new_password)
    db.commit()
    return {"message": "Password updated"}


# ---------- Users ----------

@app.get("/users/me", response_model=UserResponse)
def get_current_user_info(current_user: models.User = Depends(get_current_user)):
    return current_user


@app.put("/users/me", response_model=UserResponse)
def update_current_user(update: ProfileUpdate, db: Session = Depends(get_db),
                        current_user: models.User = Depends(get_current_user)):
    if update.username and update.username != current_user.username:
        exists = db.query(models.User).filter(models.User.username == update.username).first()
        if exists:
            raise HTTPException(status_code=400, detail="Username already taken")
        current_user.username = update.username

    if update.profile_image is not None:
        current_user.profile_image = update.profile_image
    if update.theme is not None:
        current_user.theme = update.theme
    if update.font_size is not None:
        current_user.font_size = update.font_size

    # Only administrators may change a role; anyone else's role field is ignored
    if update.role is not None and current_user.role == models.Role.ADMIN.value:
        _ensure_not_last_admin(db, current_user, update.role.value)
        current_user.role = update.role.value

    db.commit()
    db.refresh(current_user)
    return current_user


@app.get("/admin/users", response_model=List[UserResponse])
def get_users(db: Session = Depends(get_db), current_user: models.User = Depends(require_admin)):
    return db.query(models.User).order_by(models.User.created_at.desc(), models.User.id.desc()).all()


@app.put("/admin/users/{user_id}", response_model=UserSummary)
def update_user_role(user_id: int, role_update: RoleUpdate, db: Session = Depends(get_db),
                     current_user: models.User = Depends(require_admin)):
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    _ensure_not_last_admin(db, user, role_update.role.value)
    user.role = role_update.role.value
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.username} role set to {user.role} by {current_user.username}")
    return user


# ---------- Products ----------

@app.get("/products", response_model=List[ProductResponse])
def get_products(include_inactive: bool = Query(False, alias="includeInactive"), db: Session = Depends(get_db)):
    query = db.query(models.Product)
    if not include_inactive:
        query = query.filter(models.Product.is_active == True)  # noqa: E712
    return query.order_by(models.Product.id).all()


@app.get("/products/{product_id}", response_model=ProductResponse)
def get_product(product_id: int, db: Session = Depends(get_db)):
    product = db.query(models.Product).filter(models.Product.id == product_id).first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.post("/products", status_code=status.HTTP_201_CREATED)
def create_product(product: ProductCreate, db: Session = Depends(get_db),
                   current_user: models.User = Depends(require_admin)):
    try:
        db_product = models.Product(**product.model_dump(mode="json"), is_active=True)
        db.add(db_product)
        db.commit()
        db.refresh(db_product)
    except Exception as e:
        db.rollback()
        logger.exception(f"Create product error: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"message": "Product created successfully", "product": ProductResponse.model_validate(db_product)}


@app.put("/products/{product_id}")
def update_product(product_id: int, product: ProductUpdate, db: Session = Depends(get_db),
                   current_user: models.User = Depends(require_admin)):
    db_product = db.query(models.Product).filter(models.Product.id == product_id).first()
    if not db_product:
        raise HTTPException(status_code=404, detail="Product not found")

    try:
        for key, value in product.model_dump(mode="json", exclude_unset=True).items():
            if value is None and key in ("name", "price", "stock", "category", "is_active"):
                continue
            setattr(db_product, key, value)
        db.commit()
        db.refresh(db_product)
    except Exception as e:
        db.rollback()
        logger.exception(f"Update product {product_id} error: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"message": "Product updated successfully", "product": ProductResponse.model_validate(db_product)}


@app.delete("/products/{product_id}")
def delete_product(product_id: int, db: Session = Depends(get_db),
                   current_user: models.User = Depends(require_admin)):
    db_product = db.query(models.Product).filter(models.Product.id == product_id).first()
    if not db_product:
        raise HTTPException(status_code=404, detail="Product not found")

    referenced = db.query(models.OrderItem).filter(models.OrderItem.product_id == product_id).first()
    try:
        if referenced:
            # Sold products stay in the table so order history keeps its references
            db_product.is_active = False
            db.commit()
            return {"message": "Product is referenced by orders and was deactivated", "deactivated": True}

        db.delete(db_product)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.exception(f"Delete product {product_id} error: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"message": "Product deleted successfully", "deactivated": False}


# ---------- Orders ----------

@app.post("/orders", status_code=status.HTTP_201_CREATED)
def create_order(order: OrderCreate, db: Session = Depends(get_db),
                 current_user: models.User = Depends(get_current_user)):
    try:
        db_order = orders.assemble_order(db, current_user, order)
    except orders.InsufficientStockError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except orders.OrderError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception(f"Create order error: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"message": "Order created successfully", "order": orders.order_response(db_order)}


@app.get("/orders", response_model=List[OrderResponse])
def get_orders(db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    query = db.query(models.Order)
    if current_user.role != models.Role.ADMIN.value:
        query = query.filter(models.Order.user_id == current_user.id)
    db_orders = query.order_by(models.Order.created_at.desc(), models.Order.id.desc()).all()
    return [orders.order_response(order) for order in db_orders]


def _get_order_or_404(db: Session, order_id: int) -> models.Order:
    db_order = db.query(models.Order).filter(models.Order.id == order_id).first()
    if not db_order:
        raise HTTPException(status_code=404, detail="Order not found")
    return db_order


@app.get("/orders/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    db_order = _get_order_or_404(db, order_id)

    if current_user.role != models.Role.ADMIN.value and db_order.user_id != current_user.id:
        raise HTTPException(status_code=403, detail="You can only view your own orders")

    return orders.order_response(db_order)


@app.put("/orders/{order_id}/status", response_model=OrderResponse)
def update_order_status(order_id: int, status_update: OrderStatusUpdate, db: Session = Depends(get_db),
                        current_user: models.User = Depends(require_admin)):
    db_order = _get_order_or_404(db, order_id)

    try:
        db_order = orders.change_status(db, db_order, status_update.status)
    except orders.InvalidTransitionError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return orders.order_response(db_order)


@app.delete("/orders/{order_id}")
def delete_order(order_id: int, db: Session = Depends(get_db), current_user: models.User = Depends(require_admin)):
    db_order = _get_order_or_404(db, order_id)

    orders.delete_order(db, db_order)
    logger.info(f"Order {order_id} deleted by {current_user.username}")
    return {"message": "Order deleted successfully"}


# ---------- Dashboard ----------

@app.get("/dashboard/stats", response_model=DashboardStats)
def get_dashboard_stats(db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    all_orders = db.query(models.Order).order_by(models.Order.created_at.desc(), models.Order.id.desc()).all()
    products = db.query(models.Product).order_by(models.Product.id).all()

    total_revenue = sum(o.total for o in all_orders if o.status == models.OrderStatus.COMPLETED.value)

    sold = {}
    for order in all_orders:
        if order.status == models.OrderStatus.CANCELLED.value:
            continue
        for item in order.items:
            entry = sold.setdefault(item.product_id, {"name": item.product_name, "quantity": 0, "revenue": 0})
            entry["quantity"] += item.quantity
            entry["revenue"] += item.quantity * item.price
    top = sorted(sold.items(), key=lambda kv: kv[1]["quantity"], reverse=True)[:6]

    today = datetime.now(timezone.utc).date()
    days = OrderedDict()
    for offset in range(6, -1, -1):
        days[(today - timedelta(days=offset)).isoformat()] = 0
    for order in all_orders:
        if order.created_at is None or order.status == models.OrderStatus.CANCELLED.value:
            continue
        key = order.created_at.date().isoformat()
        if key in days:
            days[key] += order.total

    return DashboardStats(
        total_orders=len(all_orders),
        total_revenue=total_revenue,
        total_products=len(products),
        latest_orders=[orders.order_response(o) for o in all_orders[:6]],
        top_products=[
            TopProduct(product_id=pid, name=data["name"], quantity=data["quantity"], revenue=data["revenue"])
            for pid, data in top
        ],
        sales_last_7_days=[DailySales(date=day, total=total) for day, total in days.items()],
        low_stock=[ProductResponse.model_validate(p) for p in products if p.stock <= LOW_STOCK_THRESHOLD],
    )


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
