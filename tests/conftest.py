"""
Shared fixtures: an in-process wallet service and harness factories.

``FakeWalletService`` is a small FastAPI app mimicking the wallet API.  It is
driven through ``httpx.ASGITransport`` so no network is involved.

settle:        "sync"     transactions finish in the create call
               "deferred" transactions finish on the ``settle_after``-th poll
               "never"    transactions stay pending forever
insufficient:  "reject"   debits over balance get a 400 at create time
               "defer"    they are accepted and later finish as denied
"""

import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from wallet_harness.client import WalletApiClient
from wallet_harness.data_generator import TestDataGenerator
from wallet_harness.models import HarnessConfig, TimeoutConfig
from wallet_harness.orchestrator import TransactionOrchestrator

BASE_URL = "http://wallet.test"
PASSWORD = "password123"

_CURRENCY = re.compile(r"^[A-Z]{3}$")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class FakeWalletService:
    def __init__(
        self,
        settle: str = "sync",
        settle_after: int = 2,
        insufficient: str = "reject",
        break_isolation: bool = False,
    ):
        self.settle = settle
        self.settle_after = settle_after
        self.insufficient = insufficient
        self.break_isolation = break_isolation
        self.create_calls = 0
        self.tokens: dict[str, str] = {}
        self.users: dict[str, dict[str, Any]] = {}
        self.wallets: dict[str, dict[str, Any]] = {}
        self.transactions: dict[str, dict[str, Any]] = {}
        self.polls: dict[str, int] = {}

        for username in ("alice.johnson", "bob.smith", "carlos.rodriguez", "diana.chen", "erik.larsson"):
            self.add_user(username)

        self.app = FastAPI()
        self._register_routes()

    # ── state ───────────────────────────────────────────────────────────
    def add_user(self, username: str, clips: dict[str, float] | None = None) -> dict[str, Any]:
        user = {
            "username": username,
            "password": PASSWORD,
            "userId": str(uuid.uuid4()),
            "walletId": str(uuid.uuid4()),
            "email": f"{username}@example.com",
            "name": username.replace(".", " ").title(),
        }
        self.users[username] = user
        created = _now()
        balances = {"USD": 5000.0, "EUR": 2000.0} if clips is None else clips
        self.wallets[user["walletId"]] = {
            "walletId": user["walletId"],
            "currencyClips": [
                {"currency": c, "balance": b, "lastTransaction": created, "transactionCount": 1}
                for c, b in balances.items()
            ],
            "createdAt": created,
            "updatedAt": created,
            "owner": user["userId"],
            "history": [],
        }
        return user

    def clip(self, wallet_id: str, currency: str) -> dict[str, Any] | None:
        for clip in self.wallets[wallet_id]["currencyClips"]:
            if clip["currency"] == currency:
                return clip
        return None

    def _covered(self, wallet_id: str, currency: str, amount: float) -> bool:
        clip = self.clip(wallet_id, currency)
        return clip is not None and clip["balance"] >= amount

    def _settle(self, tx: dict[str, Any]) -> None:
        wallet_id = tx["walletId"]
        now = _now()
        if tx["type"] == "debit" and not self._covered(wallet_id, tx["currency"], tx["amount"]):
            tx.update(status="finished", outcome="denied", updatedAt=now)
            return

        clip = self.clip(wallet_id, tx["currency"])
        if clip is None:
            clip = {"currency": tx["currency"], "balance": 0.0, "lastTransaction": now, "transactionCount": 0}
            self.wallets[wallet_id]["currencyClips"].append(clip)
        sign = 1 if tx["type"] == "credit" else -1
        clip["balance"] = round(clip["balance"] + sign * tx["amount"], 4)
        clip["transactionCount"] += 1
        clip["lastTransaction"] = now
        if self.break_isolation:
            for other in self.wallets[wallet_id]["currencyClips"]:
                if other is not clip:
                    other["transactionCount"] += 1
        self.wallets[wallet_id]["updatedAt"] = now
        tx.update(status="finished", outcome="approved", updatedAt=now)

    @staticmethod
    def _public(tx: dict[str, Any], full: bool = True) -> dict[str, Any]:
        keys = ["transactionId", "status", "outcome", "createdAt", "updatedAt"]
        if full:
            keys = ["transactionId", "currency", "amount", "type", "status", "outcome", "createdAt", "updatedAt"]
        return {k: tx[k] for k in keys if tx.get(k) is not None}

    # ── validation ──────────────────────────────────────────────────────
    @staticmethod
    def _payload_error(payload: Any) -> str | None:
        if not isinstance(payload, dict):
            return "Request body must be an object"
        currency, amount, tx_type = payload.get("currency"), payload.get("amount"), payload.get("type")
        if not isinstance(currency, str) or not _CURRENCY.match(currency):
            return "Invalid currency code"
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            return "Amount must be a number"
        if amount <= 0:
            return "Amount must be positive"
        if amount > 1_000_000:
            return "Amount exceeds maximum limit"
        if round(amount, 4) != amount:
            return "Amount can have maximum 4 decimal places"
        if tx_type not in ("credit", "debit"):
            return "Invalid transaction type"
        extra = set(payload) - {"currency", "amount", "type"}
        if extra:
            return f"Unexpected fields: {sorted(extra)}"
        return None

    def _authorize(self, request: Request) -> str | None:
        header = request.headers.get("authorization", "")
        token = header.removeprefix("Bearer ")
        return self.tokens.get(token)

    # ── routes ──────────────────────────────────────────────────────────
    def _register_routes(self) -> None:
        app = self.app

        def unauthorized() -> JSONResponse:
            return JSONResponse({"detail": "Invalid or expired token"}, status_code=401)

        def not_found(what: str) -> JSONResponse:
            return JSONResponse({"detail": f"{what} not found"}, status_code=404)

        @app.get("/wakeup")
        async def wakeup():
            return {"status": "awake", "message": "Service is awake", "timestamp": _now()}

        @app.get("/health")
        async def health():
            return {"status": "healthy", "timestamp": _now(), "database": "connected"}

        @app.post("/user/login")
        async def login(request: Request):
            body = await request.json()
            user = self.users.get(body.get("username"))
            if user is None or body.get("password") != user["password"]:
                return JSONResponse({"detail": "Invalid credentials"}, status_code=401)
            token = f"tok-{uuid.uuid4().hex}"
            self.tokens[token] = user["userId"]
            return {
                "token": token,
                "refreshToken": f"ref-{uuid.uuid4().hex}",
                "expiry": (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat(),
                "userId": user["userId"],
            }

        @app.get("/user/info/{user_id}")
        async def user_info(user_id: str, request: Request):
            if self._authorize(request) is None:
                return unauthorized()
            for user in self.users.values():
                if user["userId"] == user_id:
                    return {"walletId": user["walletId"], "email": user["email"], "name": user["name"]}
            return not_found("User")

        @app.get("/wallet/{wallet_id}")
        async def wallet(wallet_id: str, request: Request):
            if self._authorize(request) is None:
                return unauthorized()
            if wallet_id not in self.wallets:
                return not_found("Wallet")
            data = self.wallets[wallet_id]
            return {
                "walletId": data["walletId"],
                "currencyClips": [dict(c) for c in data["currencyClips"]],
                "createdAt": data["createdAt"],
                "updatedAt": data["updatedAt"],
            }

        @app.post("/wallet/{wallet_id}/transaction")
        async def create_transaction(wallet_id: str, request: Request):
            if self._authorize(request) is None:
                return unauthorized()
            if wallet_id not in self.wallets:
                return not_found("Wallet")
            self.create_calls += 1
            payload = await request.json()
            error = self._payload_error(payload)
            if error:
                return JSONResponse({"detail": error}, status_code=422)

            covered = self._covered(wallet_id, payload["currency"], payload["amount"])
            if payload["type"] == "debit" and not covered and self.insufficient == "reject":
                return JSONResponse(
                    {"detail": f"Insufficient balance for {payload['currency']}"},
                    status_code=400,
                )

            now = _now()
            tx = {
                "transactionId": str(uuid.uuid4()),
                "walletId": wallet_id,
                "currency": payload["currency"],
                "amount": payload["amount"],
                "type": payload["type"],
                "status": "pending",
                "outcome": None,
                "createdAt": now,
                "updatedAt": now,
            }
            self.transactions[tx["transactionId"]] = tx
            self.wallets[wallet_id]["history"].append(tx["transactionId"])
            if self.settle == "sync":
                self._settle(tx)
            return self._public(tx, full=False)

        @app.get("/wallet/{wallet_id}/transaction/{transaction_id}")
        async def get_transaction(wallet_id: str, transaction_id: str, request: Request):
            if self._authorize(request) is None:
                return unauthorized()
            tx = self.transactions.get(transaction_id)
            if tx is None or tx["walletId"] != wallet_id:
                return not_found("Transaction")
            self.polls[transaction_id] = self.polls.get(transaction_id, 0) + 1
            if (
                self.settle == "deferred"
                and tx["status"] == "pending"
                and self.polls[transaction_id] >= self.settle_after
            ):
                self._settle(tx)
            return self._public(tx)

        @app.get("/wallet/{wallet_id}/transactions")
        async def list_transactions(wallet_id: str, request: Request):
            if self._authorize(request) is None:
                return unauthorized()
            if wallet_id not in self.wallets:
                return not_found("Wallet")
            items = [self._public(self.transactions[t]) for t in self.wallets[wallet_id]["history"]]
            currency = request.query_params.get("currency")
            if currency:
                items = [t for t in items if t["currency"] == currency]
            return {
                "transactions": items,
                "totalCount": len(items),
                "currentPage": 1,
                "totalPages": 1 if items else 0,
            }


def fast_config(**timeouts: float) -> HarnessConfig:
    values = {"poll_interval": 0.01, "transaction_completion": 0.5, "performance": 5.0}
    values.update(timeouts)
    return HarnessConfig(api_url=BASE_URL, timeouts=TimeoutConfig(**values))


@pytest.fixture
def make_service():
    return FakeWalletService


@pytest.fixture
def wallet_service(make_service):
    return make_service()


@pytest.fixture
def make_client():
    def _make(service: FakeWalletService, **kwargs: Any) -> WalletApiClient:
        return WalletApiClient(base_url=BASE_URL, transport=httpx.ASGITransport(app=service.app), **kwargs)

    return _make


@pytest.fixture
def make_orchestrator(make_client):
    """Build an orchestrator wired to a fake service with fast timeouts."""

    def _make(service: FakeWalletService, seed: int = 7, **timeouts: float) -> TransactionOrchestrator:
        config = fast_config(**timeouts)
        return TransactionOrchestrator(
            make_client(service),
            config=config,
            generator=TestDataGenerator(config, seed=seed),
        )

    return _make


@pytest.fixture
def orchestrator(wallet_service, make_orchestrator):
    return make_orchestrator(wallet_service)
