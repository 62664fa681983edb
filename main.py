import logging
import os
import time
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pymongo.database import Database
from pymongo.errors import PyMongoError

import database
from database import get_db, to_serializable
from errors import NotFound
from security import Identity, get_current_user
from services import MAX_LINE_QUANTITY, AccountService, CartService, FavouritesService, OrderService
from store import OrderStore, ProductCatalog, UserStore

# Environment
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Storefront Account API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info("%s %s -> %d (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


@app.exception_handler(PyMongoError)
async def handle_store_error(request: Request, exc: PyMongoError):
    logger.exception("Store failure on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# --------------------- Dependencies ---------------------

def get_user_store(db: Database = Depends(get_db)) -> UserStore:
    return UserStore(db)


def get_catalog(db: Database = Depends(get_db)) -> ProductCatalog:
    return ProductCatalog(db)


def get_account_service(users: UserStore = Depends(get_user_store)) -> AccountService:
    return AccountService(users)


def get_cart_service(users: UserStore = Depends(get_user_store),
                     catalog: ProductCatalog = Depends(get_catalog)) -> CartService:
    return CartService(users, catalog)


def get_favourites_service(users: UserStore = Depends(get_user_store),
                           catalog: ProductCatalog = Depends(get_catalog)) -> FavouritesService:
    return FavouritesService(users, catalog)


def get_order_service(db: Database = Depends(get_db),
                      users: UserStore = Depends(get_user_store),
                      catalog: ProductCatalog = Depends(get_catalog)) -> OrderService:
    return OrderService(users, OrderStore(db), catalog)


# --------------------- Models ---------------------

class RegisterRequest(BaseModel):
    name: str
    email: EmailStr
    password: str = Field(min_length=6)
    img: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class CartAddRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias="productId")
    quantity: int = Field(1, ge=1, le=MAX_LINE_QUANTITY)


class CartRemoveRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias="productId")
    # Zero, negative or missing removes the whole line.
    quantity: Optional[int] = None


class FavouriteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias="productId")


class OrderLineRequest(BaseModel):
    product: str
    quantity: int = Field(..., ge=1, le=MAX_LINE_QUANTITY)


class PlaceOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    products: List[OrderLineRequest]
    address: str
    total_amount: float = Field(alias="totalAmount", ge=0)


# --------------------- Routes ---------------------

@app.get("/")
def root():
    return {"message": "Storefront API is running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    if database.db is None:
        return response
    try:
        response["collections"] = database.db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except PyMongoError as e:
        response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
    return response


# Auth
@app.post("/api/user/signup")
def register(req: RegisterRequest, accounts: AccountService = Depends(get_account_service)):
    return accounts.register(req.email, req.password, req.name, req.img)


@app.post("/api/user/signin")
def login(req: LoginRequest, accounts: AccountService = Depends(get_account_service)):
    return accounts.login(req.email, req.password)


# Products
@app.get("/api/products")
def list_products(q: Optional[str] = None, category: Optional[str] = None, limit: int = Query(20, ge=1, le=100),
                  catalog: ProductCatalog = Depends(get_catalog)):
    return [to_serializable(doc) for doc in catalog.search(q, category, limit)]


@app.get("/api/products/{product_id}")
def get_product(product_id: str, catalog: ProductCatalog = Depends(get_catalog)):
    doc = catalog.get(product_id)
    if not doc:
        raise NotFound("Product not found")
    return to_serializable(doc)


# Cart
@app.post("/api/user/cart")
def add_to_cart(body: CartAddRequest, user: Identity = Depends(get_current_user),
                cart: CartService = Depends(get_cart_service)):
    updated = cart.add(user.id, body.product_id, body.quantity)
    return {"message": "Product added to cart successfully", "user": updated}


@app.patch("/api/user/cart")
def remove_from_cart(body: CartRemoveRequest, user: Identity = Depends(get_current_user),
                     cart: CartService = Depends(get_cart_service)):
    updated = cart.remove(user.id, body.product_id, body.quantity)
    return {"message": "Product quantity updated in cart", "user": updated}


@app.get("/api/user/cart")
def get_cart(user: Identity = Depends(get_current_user), cart: CartService = Depends(get_cart_service)):
    return cart.list(user.id)


# Orders
@app.post("/api/user/order")
def place_order(body: PlaceOrderRequest, user: Identity = Depends(get_current_user),
                orders: OrderService = Depends(get_order_service)):
    products = [line.model_dump() for line in body.products]
    order = orders.place(user.id, products, body.address, body.total_amount)
    return {"message": "Order placed successfully", "order": order}


@app.get("/api/user/order")
def get_all_orders(user: Identity = Depends(get_current_user), orders: OrderService = Depends(get_order_service)):
    return orders.list(user.id)


# Favourites
@app.post("/api/user/favorite")
def add_to_favorites(body: FavouriteRequest, user: Identity = Depends(get_current_user),
                     favourites: FavouritesService = Depends(get_favourites_service)):
    updated = favourites.add(user.id, body.product_id)
    return {"message": "Product added to favorites successfully", "user": updated}


@app.patch("/api/user/favorite")
def remove_from_favorites(body: FavouriteRequest, user: Identity = Depends(get_current_user),
                          favourites: FavouritesService = Depends(get_favourites_service)):
    updated = favourites.remove(user.id, body.product_id)
    return {"message": "Product removed from favorites successfully", "user": updated}


@app.get("/api/user/favorite")
def get_favourites(user: Identity = Depends(get_current_user),
                   favourites: FavouritesService = Depends(get_favourites_service)):
    return favourites.list(user.id)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
