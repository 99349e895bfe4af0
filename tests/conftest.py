"""Shared pytest fixtures: an in-process fake backend and wired services."""
from __future__ import annotations

import asyncio
from typing import Any

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from campus_exchange.core.api_client import ApiClient
from campus_exchange.core.query_cache import QueryCache
from campus_exchange.core.storage import TOKEN_KEY, MemoryStorage
from campus_exchange.services.auth_service import AuthService
from campus_exchange.services.cart_service import CartService
from campus_exchange.services.password_reset_service import PasswordResetService

ALICE = {
    "id": 1,
    "email": "alice@campus.edu",
    "username": "alice",
    "firstName": "Alice",
    "lastName": "Moreau",
    "university": "State University",
    "city": "Lyon",
    "phoneNumber": "+15550001111",
    "isPhoneVerified": True,
    "isMerchant": False,
    "isAdmin": False,
}
ALICE_PASSWORD = "secret123"
VALID_OTP = "123456"
VALID_RESET_TOKEN = "reset-ok"
VALID_INVITE = "invite-ok"

PRODUCTS = {
    7: {"id": 7, "storeId": 3, "title": "Calculus textbook", "price": "9.99"},
    8: {"id": 8, "storeId": 3, "title": "Desk lamp", "price": "25.50"},
}


class FakeBackend:
    """Minimal Campus Exchange API kept in memory."""

    def __init__(self) -> None:
        self.users: dict[int, dict[str, Any]] = {1: dict(ALICE)}
        self.cart: dict[int, dict[str, Any]] = {}
        self.next_user_id = 2
        self.next_item_id = 100
        self.requests: list[tuple[str, str]] = []
        self.auth_headers: list[str | None] = []
        self.bodies: dict[str, Any] = {}
        self.cart_gets = 0
        self.cart_gate: asyncio.Event | None = None

    def _record(self, request: web.Request) -> None:
        self.requests.append((request.method, request.path))
        self.auth_headers.append(request.headers.get("Authorization"))

    def _session(self, user: dict[str, Any]) -> web.Response:
        return web.json_response({"user": user, "token": f"tok-{user['id']}"})

    def _serialize_item(self, item: dict[str, Any]) -> dict[str, Any]:
        return {**item, "product": PRODUCTS[item["productId"]]}

    def paths(self, method: str | None = None) -> list[str]:
        return [path for m, path in self.requests if method is None or m == method]

    # -- auth ---------------------------------------------------------------
    async def login(self, request: web.Request) -> web.Response:
        self._record(request)
        body = await request.json()
        self.bodies["login"] = body
        alice = self.users[1]
        if body.get("password") == ALICE_PASSWORD and (
            body.get("email") == alice["email"] or body.get("username") == alice["username"]
        ):
            return self._session(alice)
        if body.get("otpCode") == VALID_OTP and (
            body.get("phoneNumber") == alice["phoneNumber"] or body.get("email") == alice["email"]
        ):
            return self._session(alice)
        if body.get("whatsappOtpCode") == VALID_OTP:
            return self._session(alice)
        return web.json_response({"message": "Invalid credentials"}, status=401)

    async def register(self, request: web.Request) -> web.Response:
        self._record(request)
        body = await request.json()
        self.bodies["register"] = body
        if any(u.get("username") == body.get("username") for u in self.users.values()):
            return web.json_response({"message": "Username already exists"}, status=400)
        user = {k: v for k, v in body.items() if k not in {"password", "otpCode"}}
        user["id"] = self.next_user_id
        self.next_user_id += 1
        self.users[user["id"]] = user
        return self._session(user)

    async def register_seller(self, request: web.Request) -> web.Response:
        self._record(request)
        body = await request.json()
        self.bodies["register_seller"] = body
        if not body.get("whatsappNumber") or not body.get("whatsappOtpCode"):
            return web.json_response({"message": "WhatsApp verification required"}, status=400)
        if body["whatsappOtpCode"] != VALID_OTP:
            return web.json_response({"message": "Invalid or expired OTP"}, status=401)
        user = {k: v for k, v in body.items() if k not in {"whatsappNumber", "whatsappOtpCode"}}
        user.update(
            id=self.next_user_id,
            phoneNumber=body["whatsappNumber"],
            isPhoneVerified=True,
            isMerchant=True,
        )
        self.next_user_id += 1
        self.users[user["id"]] = user
        return self._session(user)

    async def register_admin(self, request: web.Request) -> web.Response:
        self._record(request)
        body = await request.json()
        self.bodies["register_admin"] = body
        if body.get("inviteToken") != VALID_INVITE:
            return web.json_response({"message": "Invalid or expired invitation"}, status=403)
        user = {k: v for k, v in body.items() if k not in {"password", "inviteToken"}}
        user.update(id=self.next_user_id, isAdmin=True)
        self.next_user_id += 1
        self.users[user["id"]] = user
        return self._session(user)

    async def send_otp(self, request: web.Request) -> web.Response:
        self._record(request)
        self.bodies["send_otp"] = await request.json()
        return web.json_response({"message": "OTP sent to your email"})

    async def send_whatsapp_otp(self, request: web.Request) -> web.Response:
        self._record(request)
        self.bodies["send_whatsapp_otp"] = await request.json()
        return web.json_response({"message": "OTP sent via WhatsApp"})

    # -- password reset -----------------------------------------------------
    async def request_password_reset(self, request: web.Request) -> web.Response:
        self._record(request)
        self.bodies["request_password_reset"] = await request.json()
        return web.json_response(
            {"message": "If an account exists, a reset link has been sent"}
        )

    async def verify_reset_token(self, request: web.Request) -> web.Response:
        self._record(request)
        if request.query.get("token") == VALID_RESET_TOKEN:
            return web.json_response({"valid": True, "message": "Token is valid"})
        if request.query.get("token") == "stale":
            return web.json_response({"valid": False, "message": "Token has expired"}, status=400)
        if request.query.get("token") == "crash":
            return web.Response(status=500, text="Internal Server Error")
        return web.json_response({"valid": False, "message": "Invalid or expired token"})

    async def reset_password(self, request: web.Request) -> web.Response:
        self._record(request)
        body = await request.json()
        self.bodies["reset_password"] = body
        if body.get("token") != VALID_RESET_TOKEN:
            return web.json_response({"message": "Invalid or expired token"}, status=400)
        return web.json_response({"message": "Password reset successfully"})

    # -- cart ---------------------------------------------------------------
    async def get_cart(self, request: web.Request) -> web.Response:
        self._record(request)
        self.cart_gets += 1
        if self.cart_gate is not None:
            await self.cart_gate.wait()
        user_id = int(request.query["userId"])
        items = [self._serialize_item(i) for i in self.cart.values() if i["userId"] == user_id]
        return web.json_response(items)

    async def add_to_cart(self, request: web.Request) -> web.Response:
        self._record(request)
        body = await request.json()
        self.bodies["add_to_cart"] = body
        for item in self.cart.values():
            if item["userId"] == body["userId"] and item["productId"] == body["productId"]:
                item["quantity"] += body["quantity"]
                return web.json_response(self._serialize_item(item))
        item = {
            "id": self.next_item_id,
            "userId": body["userId"],
            "productId": body["productId"],
            "quantity": body["quantity"],
        }
        self.next_item_id += 1
        self.cart[item["id"]] = item
        return web.json_response(self._serialize_item(item))

    async def update_cart_item(self, request: web.Request) -> web.Response:
        self._record(request)
        item_id = int(request.match_info["item_id"])
        body = await request.json()
        item = self.cart.get(item_id)
        if item is None:
            return web.json_response({"message": "Cart item not found"}, status=404)
        item["quantity"] = body["quantity"]
        return web.json_response(self._serialize_item(item))

    async def remove_cart_item(self, request: web.Request) -> web.Response:
        self._record(request)
        item_id = int(request.match_info["item_id"])
        if self.cart.pop(item_id, None) is None:
            return web.json_response({"message": "Cart item not found"}, status=404)
        return web.json_response({"message": "Item removed from cart"})

    async def clear_cart(self, request: web.Request) -> web.Response:
        self._record(request)
        user_id = int(request.match_info["user_id"])
        for item_id in [k for k, v in self.cart.items() if v["userId"] == user_id]:
            del self.cart[item_id]
        return web.json_response({"message": "Cart cleared"})

    async def create_payment_intent(self, request: web.Request) -> web.Response:
        self._record(request)
        self.bodies["create_payment_intent"] = await request.json()
        return web.json_response({"clientSecret": "pi_123_secret_456"})

    # -- misc ---------------------------------------------------------------
    async def plain_text(self, request: web.Request) -> web.Response:
        self._record(request)
        return web.Response(text="<html>oops</html>", content_type="text/html")

    async def empty(self, request: web.Request) -> web.Response:
        self._record(request)
        return web.Response(status=204)

    async def server_error(self, request: web.Request) -> web.Response:
        self._record(request)
        return web.Response(status=500, text="Internal Server Error")

    async def bad_encoding(self, request: web.Request) -> web.Response:
        self._record(request)
        status = int(request.query.get("status", "200"))
        return web.Response(
            body=b'{"title": "\xff\xfe"}',
            status=status,
            content_type="application/json",
            charset="utf-8",
        )

    async def private(self, request: web.Request) -> web.Response:
        self._record(request)
        return web.json_response({"message": "Not authenticated"}, status=401)

    async def echo(self, request: web.Request) -> web.Response:
        self._record(request)
        body = await request.text()
        return web.json_response(
            {
                "method": request.method,
                "query": dict(request.query),
                "body": body,
                "authorization": request.headers.get("Authorization"),
                "contentType": request.headers.get("Content-Type"),
            }
        )

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/api/auth/login", self.login)
        app.router.add_post("/api/auth/register", self.register)
        app.router.add_post("/api/auth/seller/register", self.register_seller)
        app.router.add_post("/api/auth/admin/register", self.register_admin)
        app.router.add_post("/api/auth/send-otp", self.send_otp)
        app.router.add_post("/api/auth/send-whatsapp-otp", self.send_whatsapp_otp)
        app.router.add_post("/api/auth/request-password-reset", self.request_password_reset)
        app.router.add_get("/api/auth/verify-reset-token", self.verify_reset_token)
        app.router.add_post("/api/auth/reset-password", self.reset_password)
        app.router.add_get("/api/cart", self.get_cart)
        app.router.add_post("/api/cart", self.add_to_cart)
        app.router.add_put("/api/cart/{item_id}", self.update_cart_item)
        app.router.add_delete("/api/cart/user/{user_id}", self.clear_cart)
        app.router.add_delete("/api/cart/{item_id}", self.remove_cart_item)
        app.router.add_post("/api/create-payment-intent", self.create_payment_intent)
        app.router.add_get("/api/plain", self.plain_text)
        app.router.add_get("/api/empty", self.empty)
        app.router.add_get("/api/boom", self.server_error)
        app.router.add_get("/api/private", self.private)
        app.router.add_get("/api/bad-encoding", self.bad_encoding)
        app.router.add_route("*", "/api/echo", self.echo)
        return app


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
async def server(backend: FakeBackend):
    """Fake backend served on a random local port."""
    test_server = TestServer(backend.build_app())
    await test_server.start_server()
    try:
        yield test_server
    finally:
        await test_server.close()


@pytest.fixture()
def base_url(server: TestServer) -> str:
    return f"http://{server.host}:{server.port}"


@pytest.fixture()
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture()
async def api(base_url: str, storage: MemoryStorage):
    client = ApiClient(base_url, token_provider=lambda: storage.get_item(TOKEN_KEY))
    try:
        yield client
    finally:
        await client.close()


@pytest.fixture()
def query_cache() -> QueryCache:
    return QueryCache()


@pytest.fixture()
def auth(api: ApiClient, storage: MemoryStorage, query_cache: QueryCache) -> AuthService:
    return AuthService(api, storage, query_cache)


@pytest.fixture()
def cart(api: ApiClient, query_cache: QueryCache, auth: AuthService) -> CartService:
    return CartService(api, query_cache, auth)


@pytest.fixture()
def password_reset(api: ApiClient) -> PasswordResetService:
    return PasswordResetService(api)


@pytest.fixture()
async def logged_in(auth: AuthService) -> AuthService:
    await auth.login({"email": ALICE["email"], "password": ALICE_PASSWORD})
    return auth


@pytest.fixture()
def _campus_env(monkeypatch, tmp_path) -> None:
    """Minimal env for load_settings(); .env files are not read."""
    for name in (
        "CAMPUS_API_URL",
        "CAMPUS_STORAGE_PATH",
        "REDIS_URL",
        "CAMPUS_REQUEST_TIMEOUT",
        "CAMPUS_QUERY_STALE_TIME",
        "CAMPUS_GEOLOCATION_ENABLED",
        "CAMPUS_GEOLOCATION_URL",
        "CAMPUS_DEFAULT_COUNTRY",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("campus_exchange.core.config.load_dotenv", lambda *a, **k: False)
    monkeypatch.setenv("CAMPUS_API_URL", "https://api.campus.test/")
    monkeypatch.setenv("CAMPUS_STORAGE_PATH", str(tmp_path / "storage.json"))
