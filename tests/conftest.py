from __future__ import annotations

import pytest

from vanessa_chat.config import ChatConfig


@pytest.fixture
def cfg() -> ChatConfig:
    return ChatConfig(
        openrouter_api_key="or-key-123456",
        groq_api_key=None,
        openrouter_base_url="https://openrouter.test/api/v1",
        groq_base_url="https://groq.test/openai/v1",
        openrouter_models=["m1", "m2", "m3", "m4", "m5"],
        groq_model="llama3-8b-8192",
        primary_timeout_seconds=30,
        secondary_timeout_seconds=15,
        empty_response_delay_seconds=0.5,
        total_deadline_seconds=0,
        enable_metrics=False,
        admin_auth_token=None,
        allowed_hosts=[],
        cors_allow_origins=[],
    )
