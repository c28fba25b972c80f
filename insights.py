"""Quick cash-flow insights for the dashboard from an OpenAI-compatible chat model.

The panel is optional: without ``AI_API_KEY`` the client reports itself as
disabled and the dashboard does not offer it.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

import requests

from settings import settings
from utils import format_money

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = "No data available for analysis."
EMPTY_REPLY_MESSAGE = "Could not generate insights right now."
ERROR_MESSAGE = "Could not reach the AI service."

SYSTEM_PROMPT = (
    "You are a senior financial consultant for small and medium businesses. "
    "Be concise and direct."
)
MAX_ACCOUNTS = 200


def build_prompt(accounts: Iterable, currency: str = settings.CURRENCY) -> str:
    lines = [
        f"Supplier: {acc.supplier}, Amount: {currency} {format_money(acc.amount)}, "
        f"Due: {acc.due_date.isoformat()}, Status: {acc.status}"
        for acc in list(accounts)[:MAX_ACCOUNTS]
    ]
    return (
        "Analyze the following accounts payable and give 3 quick, actionable insights "
        "about savings or cash flow:\n\n" + "\n".join(lines)
    )


class InsightsClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.AI_API_KEY
        self.model = model or settings.AI_MODEL
        self.base_url = (base_url or settings.AI_BASE_URL).rstrip("/")
        self.session = session or (requests.Session() if self.api_key else None)

    @property
    def enabled(self) -> bool:
        return bool(self.api_key) and self.session is not None

    def insights(self, accounts: Sequence) -> str:
        if not accounts:
            return NO_DATA_MESSAGE
        if not self.enabled:
            return EMPTY_REPLY_MESSAGE

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(accounts)},
            ],
            "temperature": 0.4,
        }
        try:
            response = self.session.post(
                f"{self.base_url}/chat/completions",
                headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
                json=payload,
                timeout=30,
            )
            response.raise_for_status()
            content = response.json()["choices"][0]["message"]["content"]
        except (requests.RequestException, ValueError, KeyError, IndexError, TypeError):
            logger.exception("Insights request failed")
            return ERROR_MESSAGE

        logger.info("Generated insights for %d accounts", len(accounts))
        return (content or "").strip() or EMPTY_REPLY_MESSAGE
