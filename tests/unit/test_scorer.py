# PATH: tests/unit/test_scorer.py
"""
Gemini client and scorer prompts / fallbacks.
"""

import json
from decimal import Decimal
from types import SimpleNamespace

import httpx
import pytest

from ai.gemini import GeminiClient
from ai.scorer import (
    ADVICE_FAILED,
    FLASH_LOAN_SCHEMA,
    POST_MORTEM_FAILED,
    OpportunityScorer,
    build_advice_prompt,
    build_post_mortem_prompt,
    build_score_prompt,
    normalize_sentiment,
)
from core.constants import TradeStatus, Volatility
from core.exceptions import ErrorCode, ScoringError
from core.models import MarketContext
from strategy.config import BotConfig
from strategy.decision import DecisionGate, ScoreRequest
from fakes import make_opportunity, make_trade, triangular_route


def gemini_transport(text=None, status=200, raw=None, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if raw is not None:
            return httpx.Response(status, json=raw)
        body = {"candidates": [{"content": {"parts": [{"text": text}]}}]}
        return httpx.Response(status, json=body)

    return httpx.MockTransport(handler)


def _request(route=None) -> ScoreRequest:
    return ScoreRequest(
        opportunity=make_opportunity(route=route, p_success=None),
        market_context=MarketContext(gas_price_gwei=Decimal("31.50"), volatility=Volatility.LOW),
        similarity_context="No similar trades in memory.",
        flash_loan_provider="Aave V3",
        flash_loan_fee=Decimal("0.0009"),
    )


class TestGeminiClient:
    @pytest.mark.asyncio
    async def test_generate_json_request_shape(self):
        seen = []
        client = GeminiClient("k3y", transport=gemini_transport('{"pSuccess": 0.8}', seen=seen))

        data = await client.generate_json("prompt", FLASH_LOAN_SCHEMA, temperature=0.5)
        await client.close()

        assert data == {"pSuccess": 0.8}
        request = seen[0]
        assert str(request.url).endswith("/models/gemini-2.5-flash:generateContent")
        assert request.headers["x-goog-api-key"] == "k3y"
        body = json.loads(request.content)
        assert body["contents"][0]["parts"][0]["text"] == "prompt"
        assert body["generationConfig"]["responseMimeType"] == "application/json"
        assert body["generationConfig"]["temperature"] == 0.5

    @pytest.mark.asyncio
    async def test_plain_text_has_no_generation_config(self):
        seen = []
        client = GeminiClient("k3y", transport=gemini_transport("hello", seen=seen))
        assert await client.generate("prompt") == "hello"
        await client.close()
        assert "generationConfig" not in json.loads(seen[0].content)

    @pytest.mark.asyncio
    async def test_missing_key(self):
        with pytest.raises(ScoringError) as exc_info:
            await GeminiClient("").generate("prompt")
        assert exc_info.value.code == ErrorCode.SCORER_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_http_error(self):
        client = GeminiClient("k3y", transport=gemini_transport(raw={"error": "quota"}, status=429))
        with pytest.raises(ScoringError) as exc_info:
            await client.generate("prompt")
        await client.close()
        assert exc_info.value.code == ErrorCode.SCORER_ERROR

    @pytest.mark.asyncio
    async def test_no_candidates(self):
        client = GeminiClient("k3y", transport=gemini_transport(raw={"candidates": []}))
        with pytest.raises(ScoringError) as exc_info:
            await client.generate("prompt")
        await client.close()
        assert exc_info.value.code == ErrorCode.SCORER_MALFORMED

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        client = GeminiClient("k3y", transport=gemini_transport("definitely not json"))
        with pytest.raises(ScoringError) as exc_info:
            await client.generate_json("prompt", FLASH_LOAN_SCHEMA)
        await client.close()
        assert exc_info.value.code == ErrorCode.SCORER_MALFORMED


class TestPrompts:
    def test_pairwise_prompt(self):
        prompt = build_score_prompt(_request())
        assert "PAIRWISE INTER-DEX" in prompt
        assert "- Arbitrage Route: DexOne -> DexTwo" in prompt
        assert "- Gross Spread: 5.0000%" in prompt
        assert "- Net Spread (after loan fee): 4.9100%" in prompt
        assert "- Gas Price: 31.50 Gwei" in prompt
        assert "No similar trades in memory." in prompt

    def test_triangular_prompt(self):
        prompt = build_score_prompt(_request(route=triangular_route()))
        assert "TRIANGULAR" in prompt
        assert "- DEX: DexOne" in prompt

    def test_post_mortem_prompt(self):
        result = SimpleNamespace(profit=Decimal("-0.0105"), tx_hash="0xabc", error_message="reverted")
        prompt = build_post_mortem_prompt(make_opportunity(), TradeStatus.FAILED, result)
        assert "- Status: failed" in prompt
        assert "- Actual PnL: -0.01050 ETH" in prompt
        assert "- Predicted P(Success): 90.00%" in prompt

    def test_advice_prompt_uses_last_ten(self):
        trades = [make_trade(trade_id=f"t{i}") for i in range(12)]
        prompt = build_advice_prompt(trades, BotConfig())
        assert prompt.count("AAA/BBB (pairwise)") == 10


class TestOpportunityScorer:
    @pytest.mark.asyncio
    async def test_score_through_gate(self):
        answer = '{"pSuccess": 0.8, "loanAmount": 2, "rationale": "ok", "useFlashbots": true}'
        client = GeminiClient("k3y", transport=gemini_transport(answer))
        gate = DecisionGate(OpportunityScorer(client), timeout_seconds=1)

        opp = await gate.evaluate(_request())
        await client.close()

        assert opp.p_success == 0.8
        assert opp.loan_amount == Decimal("2")
        assert opp.channel.value == "private"

    @pytest.mark.asyncio
    async def test_unavailable_model_fails_closed_at_gate(self):
        gate = DecisionGate(OpportunityScorer(GeminiClient("")), timeout_seconds=1)
        opp = await gate.evaluate(_request())
        assert opp.p_success == 0.0

    @pytest.mark.asyncio
    async def test_advisory_fallbacks(self):
        scorer = OpportunityScorer(GeminiClient(""))
        result = SimpleNamespace(profit=Decimal("0"), tx_hash=None, error_message=None)

        assert await scorer.analyze_trade(make_opportunity(), TradeStatus.SUCCESS, result) == POST_MORTEM_FAILED
        assert await scorer.suggest_config_changes([make_trade()], BotConfig()) == ADVICE_FAILED
        assert await scorer.market_sentiment(["AAA/BBB"]) == {"overall": "neutral", "tokens": {}}

    @pytest.mark.asyncio
    async def test_sentiment_is_normalized(self):
        answer = '{"overall": "BULLISH", "tokens": {"AAA/BBB": "moon"}}'
        client = GeminiClient("k3y", transport=gemini_transport(answer))
        sentiment = await OpportunityScorer(client).market_sentiment(["AAA/BBB"])
        await client.close()
        assert sentiment == {"overall": "bullish", "tokens": {"AAA/BBB": "neutral"}}


def test_normalize_sentiment_rejects_non_objects():
    assert normalize_sentiment(["bullish"]) == {"overall": "neutral", "tokens": {}}
