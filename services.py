"""
Cart, favourites, order and account operations.

The cart and favourites rules live in small pure functions over plain lists;
the service classes load the user, run one of those functions through
`UserStore.mutate` and hand back a serializable view. Every operation takes
the caller's user id explicitly.
"""

import logging
import os
from typing import List, Optional

from bson import ObjectId

from database import parse_object_id, to_serializable
from errors import Conflict, Forbidden, InvalidInput, NotFound, Unauthenticated
from schemas import Order, OrderLine, User
from security import create_token, hash_password, verify_password
from store import OrderStore, ProductCatalog, UserStore

logger = logging.getLogger(__name__)

VALIDATE_ORDER_TOTAL = os.getenv("VALIDATE_ORDER_TOTAL", "true").lower() in ("1", "true", "yes")

# Allowed difference between the client's total and the catalog total.
TOTAL_TOLERANCE = 0.01

# Largest quantity a single cart or order line may hold.
MAX_LINE_QUANTITY = 2 ** 31 - 1


# --------------------- Transitions ---------------------

def add_line(cart: List[dict], product_id: ObjectId, quantity: int) -> List[dict]:
    """Merge `quantity` into the line for `product_id`, appending one if missing."""
    lines = [dict(line) for line in cart]
    for line in lines:
        if line.get("product") == product_id:
            if line["quantity"] + quantity > MAX_LINE_QUANTITY:
                raise InvalidInput(f"Quantity cannot exceed {MAX_LINE_QUANTITY}")
            line["quantity"] += quantity
            return lines
    lines.append({"product": product_id, "quantity": quantity})
    return lines


def remove_line(cart: List[dict], product_id: ObjectId, quantity: Optional[int] = None) -> List[dict]:
    """
    Take `quantity` off the line for `product_id`.

    A line that drops to zero or below is removed. Without a positive
    quantity the whole line goes.
    """
    lines = [dict(line) for line in cart]
    for index, line in enumerate(lines):
        if line.get("product") != product_id:
            continue
        if quantity and quantity > 0:
            line["quantity"] -= quantity
            if line["quantity"] <= 0:
                del lines[index]
        else:
            del lines[index]
        return lines
    raise NotFound("Product not found in the user's cart")


def add_favourite(favourites: List[ObjectId], product_id: ObjectId) -> Optional[List[ObjectId]]:
    """Returns None when the product is already a favourite."""
    if product_id in favourites:
        return None
    return list(favourites) + [product_id]


def remove_favourite(favourites: List[ObjectId], product_id: ObjectId) -> List[ObjectId]:
    return [fav for fav in favourites if fav != product_id]


def public_user(user: dict) -> dict:
    doc = {k: v for k, v in user.items() if k != "password_hash"}
    return to_serializable(doc)


# --------------------- Services ---------------------

class CartService:
    def __init__(self, users: UserStore, catalog: ProductCatalog):
        self.users = users
        self.catalog = catalog

    def add(self, user_id: str, product_id: str, quantity: int) -> dict:
        pid = parse_object_id(product_id, "product id")
        user = self.users.mutate(user_id, lambda u: {"cart": add_line(u.get("cart", []), pid, quantity)})
        logger.info("User %s added %d x %s to cart", user_id, quantity, pid)
        return public_user(user)

    def remove(self, user_id: str, product_id: str, quantity: Optional[int] = None) -> dict:
        pid = parse_object_id(product_id, "product id")
        user = self.users.mutate(user_id, lambda u: {"cart": remove_line(u.get("cart", []), pid, quantity)})
        logger.info("User %s removed %s x %s from cart", user_id, quantity or "all", pid)
        return public_user(user)

    def list(self, user_id: str) -> List[dict]:
        user = self.users.get(user_id)
        if user is None:
            raise NotFound("User not found")
        cart = user.get("cart", [])
        products = self.catalog.resolve(line["product"] for line in cart)
        return [
            {
                "product": to_serializable(products.get(line["product"])),
                "quantity": line["quantity"],
            }
            for line in cart
        ]


class FavouritesService:
    def __init__(self, users: UserStore, catalog: ProductCatalog):
        self.users = users
        self.catalog = catalog

    def add(self, user_id: str, product_id: str) -> dict:
        pid = parse_object_id(product_id, "product id")
        user = self.users.mutate(user_id, lambda u: self._added(u, pid))
        return public_user(user)

    @staticmethod
    def _added(user: dict, product_id: ObjectId) -> Optional[dict]:
        favourites = add_favourite(user.get("favourites", []), product_id)
        if favourites is None:
            return None
        return {"favourites": favourites}

    def remove(self, user_id: str, product_id: str) -> dict:
        pid = parse_object_id(product_id, "product id")
        user = self.users.mutate(user_id, lambda u: {"favourites": remove_favourite(u.get("favourites", []), pid)})
        return public_user(user)

    def list(self, user_id: Optional[str]) -> List[dict]:
        if not user_id:
            raise Unauthenticated()
        user = self.users.get(user_id)
        if user is None:
            raise NotFound("User not found")
        favourites = user.get("favourites", [])
        products = self.catalog.resolve(favourites)
        return [to_serializable(products[fav]) for fav in favourites if fav in products]


class OrderService:
    def __init__(self, users: UserStore, orders: OrderStore, catalog: ProductCatalog,
                 validate_total: bool = VALIDATE_ORDER_TOTAL):
        self.users = users
        self.orders = orders
        self.catalog = catalog
        self.validate_total = validate_total

    def place(self, user_id: str, products: List[dict], address: str, total_amount: float) -> dict:
        if not products:
            raise InvalidInput("Order has no products")
        user = self.users.get(user_id)
        if user is None:
            raise NotFound("User not found")

        lines = [
            OrderLine(product=parse_object_id(item["product"], "product id"), quantity=item["quantity"])
            for item in products
        ]
        if self.validate_total:
            self._check_total(lines, total_amount)

        order = self.orders.create(Order(
            products=lines,
            user=user["_id"],
            total_amount=total_amount,
            address=address,
        ))
        logger.info("Order %s placed by user %s", order["_id"], user_id)

        try:
            self.users.mutate(user["_id"], lambda u: {"cart": []})
        except Exception:
            logger.exception("Order %s stored but cart of user %s was not cleared", order["_id"], user_id)
            raise
        return to_serializable(order)

    def _check_total(self, lines: List[OrderLine], total_amount: float) -> None:
        found = self.catalog.resolve(line.product for line in lines)
        expected = 0.0
        for line in lines:
            product = found.get(line.product)
            if product is None:
                raise NotFound(f"Product not found: {line.product}")
            expected += float(product.get("price", 0)) * line.quantity
        expected = round(expected, 2)
        if abs(expected - total_amount) > TOTAL_TOLERANCE:
            logger.warning("Order total %.2f does not match catalog total %.2f", total_amount, expected)
            raise InvalidInput("Order total does not match product prices")

    def list(self, user_id: str) -> List[dict]:
        uid = parse_object_id(user_id, "user id")
        return [to_serializable(order) for order in self.orders.list_for_user(uid)]


class AccountService:
    def __init__(self, users: UserStore):
        self.users = users

    def _issue(self, user: dict) -> dict:
        token = create_token({"id": str(user["_id"]), "email": user["email"], "name": user["name"]})
        return {"token": token, "user": public_user(user)}

    def register(self, email: str, password: str, name: str, img: Optional[str] = None) -> dict:
        if self.users.get_by_email(email):
            raise Conflict("Email is already in use")
        user = self.users.create(User(
            name=name,
            email=email,
            password_hash=hash_password(password),
            img=img,
        ))
        logger.info("Registered user %s", user["_id"])
        return self._issue(user)

    def login(self, email: str, password: str) -> dict:
        user = self.users.get_by_email(email)
        if not user:
            raise NotFound("User not found")
        if not verify_password(password, user.get("password_hash", "")):
            raise Forbidden("Incorrect password")
        return self._issue(user)
