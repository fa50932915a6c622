import hashlib
import hmac
import json
from typing import Dict, List

import mongomock
import pytest
from fastapi.testclient import TestClient

import users
from errors import NotFound, Unauthorized, UpstreamError
from identity import VerifiedIdentity
from llm import Completion, TokenUsage
from main import create_app
from paystack import PaystackClient
import subscriptions
from schemas import SubscriptionPlan, Tier

WEBHOOK_SECRET = "sk_test_secret"


class FakeIdentity:
    """Maps bearer tokens to identities and records admin calls."""

    def __init__(self):
        self.tokens: Dict[str, VerifiedIdentity] = {}
        self.admin_claims: Dict[str, bool] = {}
        self.disabled: Dict[str, bool] = {}
        self.deleted: List[str] = []

    def add(self, token, uid, email=None, is_admin=False):
        self.tokens[token] = VerifiedIdentity(uid=uid, email=email, name=None, is_admin=is_admin)

    def verify(self, token):
        if token not in self.tokens:
            raise Unauthorized("Invalid or expired token")
        return self.tokens[token]

    def set_admin(self, uid, is_admin):
        if uid not in {i.uid for i in self.tokens.values()}:
            raise NotFound("User not found")
        self.admin_claims[uid] = is_admin

    def set_disabled(self, uid, disabled):
        self.disabled[uid] = disabled

    def delete_user(self, uid):
        self.deleted.append(uid)

    def initialize(self):
        pass

    def close(self):
        pass


class FakeChatClient:
    def __init__(self):
        self.reply = "Hello from the model"
        self.fail = False
        self.calls = []

    def complete(self, model, messages):
        self.calls.append((model, list(messages)))
        if self.fail:
            raise UpstreamError("AI service error")
        return Completion(
            id="gen-1",
            content=self.reply,
            usage=TokenUsage(prompt_tokens=7, completion_tokens=5, total_tokens=12),
        )

    def close(self):
        pass


class FakePaystack(PaystackClient):
    """Answers initialize/verify in process; signatures use the real HMAC check."""

    def __init__(self):
        super().__init__(WEBHOOK_SECRET, public_key="pk_test_public")
        self.initialized: Dict[str, dict] = {}
        self.overrides: Dict[str, dict] = {}

    def _call(self, method, path, **kwargs):
        if path == "/transaction/initialize":
            payload = kwargs["json"]
            self.initialized[payload["reference"]] = payload
            return {
                "authorization_url": f"https://checkout.paystack.test/{payload['reference']}",
                "access_code": "ac_1",
                "reference": payload["reference"],
            }
        reference = path.rsplit("/", 1)[-1]
        if reference in self.overrides:
            return self.overrides[reference]
        payload = self.initialized.get(reference, {})
        return {
            "status": "success",
            "reference": reference,
            "amount": int(payload.get("amount", 0)),
            "currency": payload.get("currency", "NGN"),
        }


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha512).hexdigest()


def webhook_body(event: str, reference: str) -> bytes:
    return json.dumps({"event": event, "data": {"reference": reference}}).encode("utf-8")


@pytest.fixture
def db():
    return mongomock.MongoClient()["zlma_test"]


@pytest.fixture
def identity():
    fake = FakeIdentity()
    fake.add("alice-token", "alice", "alice@example.com")
    fake.add("bob-token", "bob", "bob@example.com")
    fake.add("admin-token", "root", "root@example.com", is_admin=True)
    return fake


@pytest.fixture
def llm():
    return FakeChatClient()


@pytest.fixture
def gateway():
    return FakePaystack()


@pytest.fixture
def client(db, identity, llm, gateway):
    app = create_app(db=db, identity=identity, chat_client=llm, payments=gateway)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def alice(db):
    return users.create_profile(db, "alice", "alice@example.com", "alice")


@pytest.fixture
def bob(db):
    return users.create_profile(db, "bob", "bob@example.com", "bob")


@pytest.fixture
def pro_plan(db):
    return subscriptions.save_plan(
        db,
        SubscriptionPlan(
            name="Pro Monthly",
            tier=Tier.PRO,
            price=500000,
            currency="NGN",
            messages_per_day=100,
            can_upload_images=True,
            can_upload_files=True,
        ),
    )


def auth(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
