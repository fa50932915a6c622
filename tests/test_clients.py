import hashlib
import hmac

import pytest
import requests

from errors import BadRequest, UpstreamError
from llm import ChatClient, model_for_tier, resolve_model
from paystack import PaystackClient, generate_reference


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.headers = {}
        self.response = response
        self.error = error
        self.requests = []

    def _send(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        if self.error:
            raise self.error
        return self.response

    def post(self, url, **kwargs):
        return self._send("POST", url, **kwargs)

    def request(self, method, url, **kwargs):
        return self._send(method, url, **kwargs)

    def close(self):
        pass


def test_resolve_model_aliases():
    assert resolve_model("zlma-creative") == "anthropic/claude-3.5-sonnet"
    assert resolve_model("something-else") == "openai/gpt-4o"
    assert resolve_model(None) == "openai/gpt-4o"
    assert model_for_tier("enterprise") == "openai/gpt-4o"


def test_complete_prepends_system_prompt():
    session = FakeSession(
        FakeResponse(
            payload={
                "id": "gen-9",
                "choices": [{"message": {"role": "assistant", "content": "hey"}}],
                "usage": {"prompt_tokens": 3, "completion_tokens": 1, "total_tokens": 4},
            }
        )
    )
    client = ChatClient("key", referer="https://zlmaai.com", title="Zlma AI", session=session)
    completion = client.complete("openai/gpt-4o", [{"role": "user", "content": "hi"}])

    assert completion.content == "hey"
    assert completion.usage.total_tokens == 4
    _, url, kwargs = session.requests[0]
    assert url == "https://openrouter.ai/api/v1/chat/completions"
    sent = kwargs["json"]["messages"]
    assert sent[0]["role"] == "system"
    assert sent[1] == {"role": "user", "content": "hi"}
    assert session.headers["Authorization"] == "Bearer key"
    assert session.headers["HTTP-Referer"] == "https://zlmaai.com"


@pytest.mark.parametrize(
    "session",
    [
        FakeSession(error=requests.ConnectionError("down")),
        FakeSession(FakeResponse(status_code=500, payload={}, text="boom")),
        FakeSession(FakeResponse(payload={"choices": []})),
        FakeSession(FakeResponse(payload=None)),
    ],
)
def test_complete_failures_are_upstream_errors(session):
    with pytest.raises(UpstreamError):
        ChatClient("key", session=session).complete("m", [{"role": "user", "content": "hi"}])


def test_paystack_rejection_is_bad_request():
    session = FakeSession(FakeResponse(payload={"status": False, "message": "Invalid key"}))
    with pytest.raises(BadRequest) as exc:
        PaystackClient("sk", session=session).verify("zlma_1")
    assert exc.value.message == "Invalid key"


def test_paystack_transport_failure():
    session = FakeSession(error=requests.Timeout("slow"))
    with pytest.raises(UpstreamError):
        PaystackClient("sk", session=session).initialize("a@b.c", 100, "NGN", "zlma_1")


def test_paystack_initialize_sends_minor_units():
    session = FakeSession(FakeResponse(payload={"status": True, "data": {"authorization_url": "u"}}))
    data = PaystackClient("sk", session=session).initialize("a@b.c", 500000, "NGN", "zlma_1", "https://cb")
    assert data == {"authorization_url": "u"}
    method, url, kwargs = session.requests[0]
    assert (method, url) == ("POST", "https://api.paystack.co/transaction/initialize")
    assert kwargs["json"]["amount"] == "500000"
    assert kwargs["json"]["callback_url"] == "https://cb"


def test_signature_check():
    client = PaystackClient("sk_live", session=FakeSession())
    body = b'{"event":"charge.success"}'
    good = hmac.new(b"sk_live", body, hashlib.sha512).hexdigest()
    assert client.verify_signature(body, good)
    assert not client.verify_signature(body, "0" * 128)
    assert not client.verify_signature(body, None)


def test_references_are_unique():
    refs = {generate_reference() for _ in range(50)}
    assert len(refs) == 50
    assert all(r.startswith("zlma_") and len(r) == 21 for r in refs)
