from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import requests

import insights
from insights import (
    EMPTY_REPLY_MESSAGE,
    ERROR_MESSAGE,
    NO_DATA_MESSAGE,
    InsightsClient,
    build_prompt,
)


def acc(supplier="Acme", amount="1234.5", status="PENDING"):
    return SimpleNamespace(supplier=supplier, amount=Decimal(amount), due_date=date(2024, 1, 10), status=status)


class DummyResponse:
    def __init__(self, payload, error=None):
        self.payload = payload
        self.error = error

    def raise_for_status(self):
        if self.error:
            raise self.error

    def json(self):
        return self.payload


class DummySession:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.exc:
            raise self.exc
        return self.response


def reply(content):
    return DummyResponse({"choices": [{"message": {"content": content}}]})


def test_prompt_lists_each_account():
    prompt = build_prompt([acc(), acc(supplier="Energia SA", status="PAID")], currency="BRL")
    assert "3 quick, actionable insights" in prompt
    assert "Supplier: Acme, Amount: BRL 1.234,50, Due: 2024-01-10, Status: PENDING" in prompt
    assert "Supplier: Energia SA" in prompt


def test_disabled_without_api_key():
    client = InsightsClient(api_key="")
    assert not client.enabled
    assert client.session is None


def test_no_accounts_skips_the_model():
    session = DummySession(response=reply("unused"))
    client = InsightsClient(api_key="key", session=session)
    assert client.insights([]) == NO_DATA_MESSAGE
    assert session.calls == []


def test_model_reply_is_returned():
    session = DummySession(response=reply("  1. Negotiate rent.\n2. Pay early.  "))
    client = InsightsClient(api_key="key", model="test-model", base_url="https://llm.example.com/v1/", session=session)

    assert client.insights([acc()]) == "1. Negotiate rent.\n2. Pay early."
    url, kwargs = session.calls[0]
    assert url == "https://llm.example.com/v1/chat/completions"
    assert kwargs["headers"]["Authorization"] == "Bearer key"
    assert kwargs["json"]["model"] == "test-model"
    assert kwargs["json"]["messages"][0]["content"] == insights.SYSTEM_PROMPT


def test_empty_reply_falls_back():
    client = InsightsClient(api_key="key", session=DummySession(response=reply("")))
    assert client.insights([acc()]) == EMPTY_REPLY_MESSAGE


def test_errors_fall_back():
    network = InsightsClient(api_key="key", session=DummySession(exc=requests.ConnectionError("down")))
    assert network.insights([acc()]) == ERROR_MESSAGE

    http = InsightsClient(
        api_key="key",
        session=DummySession(response=DummyResponse({}, error=requests.HTTPError("500"))),
    )
    assert http.insights([acc()]) == ERROR_MESSAGE

    malformed = InsightsClient(api_key="key", session=DummySession(response=DummyResponse({"choices": []})))
    assert malformed.insights([acc()]) == ERROR_MESSAGE
