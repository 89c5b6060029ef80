"""
Unit tests for the LLM rule oracle.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from sut_compliance.core.enums import ExtractionMethod, RuleKind, RuleSource, SpecialtyMode
from sut_compliance.gateways.base import GatewayError, ProviderAuthenticationError
from sut_compliance.gateways.llm_gateway import LLMResponse
from sut_compliance.schemas.oracle import OracleRequestItem
from sut_compliance.services.rule_oracle import LLMRuleOracle, build_user_prompt
from sut_compliance.utils.errors import OracleAuthenticationError, OracleBatchError


@pytest.fixture
def items():
    return [
        OracleRequestItem(
            local_index=0,
            code="530010",
            source=RuleSource.EK_2B,
            description="Sadece radyoloji uzmanları tarafından yapılması halinde faturalandırılır.",
        ),
        OracleRequestItem(
            local_index=1,
            code="530020",
            source=RuleSource.GIL,
            description="Üçüncü basamakta yapılır.",
        ),
    ]


@pytest.fixture
def mock_gateway():
    gateway = MagicMock()
    gateway.complete = AsyncMock()
    return gateway


def _reply(payload) -> LLMResponse:
    return LLMResponse(content=json.dumps(payload, ensure_ascii=False), model="test-model")


class TestLLMRuleOracle:
    """Tests for LLMRuleOracle.extract_batch."""

    @pytest.mark.asyncio
    async def test_typed_rules(self, settings, mock_gateway, items):
        """Test replies are validated into typed oracle rules."""
        mock_gateway.complete.return_value = _reply(
            {
                "0": {
                    "rules": [
                        {
                            "kind": "specialty_restriction",
                            "params": {"specialties": ["radyoloji"], "mode": "only"},
                            "confidence": 0.95,
                            "explanation": "Yalnızca radyoloji uzmanları.",
                        }
                    ],
                    "crossRefs": ["530020"],
                },
                "1": {"rules": [{"kind": "tier_restriction", "params": {"tiers": [3]}}]},
            }
        )
        oracle = LLMRuleOracle(gateway=mock_gateway, settings=settings)

        results = await oracle.extract_batch(items)

        first = results[0].rules[0]
        assert first.kind == RuleKind.SPECIALTY_RESTRICTION
        assert first.params.mode == SpecialtyMode.ONLY
        assert first.confidence == 0.95
        assert first.extraction_method == ExtractionMethod.ORACLE
        assert first.origin_source == RuleSource.EK_2B
        assert first.source_text == items[0].description
        assert results[0].cross_refs == ["530020"]
        assert results[1].rules[0].confidence == settings.ORACLE_DEFAULT_CONFIDENCE

    @pytest.mark.asyncio
    async def test_bare_list_and_missing_items(self, settings, mock_gateway, items):
        """Test a bare rule list is accepted and a missing index yields no rules."""
        mock_gateway.complete.return_value = _reply(
            {"0": [{"kind": "age_restriction", "params": {"mode": "under", "max_age": 18}}]}
        )
        results = await LLMRuleOracle(gateway=mock_gateway, settings=settings).extract_batch(items)

        assert results[0].rules[0].kind == RuleKind.AGE_RESTRICTION
        assert results[1].rules == []

    @pytest.mark.asyncio
    async def test_invalid_rules_dropped(self, settings, mock_gateway, items):
        """Test unknown kinds and bad parameters are dropped, confidence is clamped."""
        mock_gateway.complete.return_value = _reply(
            {
                "0": {
                    "rules": [
                        {"kind": "unknown_kind", "params": {}},
                        {"kind": "tier_restriction", "params": {"tiers": []}},
                        {"kind": "frequency_limit", "params": {"period": "month", "limit": 1}, "confidence": 1.7},
                    ]
                },
                "1": "not a rule object",
            }
        )
        results = await LLMRuleOracle(gateway=mock_gateway, settings=settings).extract_batch(items)

        assert [r.kind for r in results[0].rules] == [RuleKind.FREQUENCY_LIMIT]
        assert results[0].rules[0].confidence == 1.0
        assert results[1].rules == []

    @pytest.mark.asyncio
    async def test_prompt(self, settings, mock_gateway, items):
        """Test every item is listed in the user prompt."""
        mock_gateway.complete.return_value = _reply({})
        await LLMRuleOracle(gateway=mock_gateway, settings=settings).extract_batch(items)

        request = mock_gateway.complete.call_args.args[0]
        assert '[0] (530010, EK-2B) "Sadece radyoloji' in request.user_prompt
        assert "[1] (530020, GİL)" in request.user_prompt
        assert request.temperature == 0.0
        assert "tier_restriction" in request.system_prompt

    @pytest.mark.asyncio
    async def test_empty_batch(self, settings, mock_gateway):
        """Test an empty batch is answered without a request."""
        assert await LLMRuleOracle(gateway=mock_gateway, settings=settings).extract_batch([]) == {}
        mock_gateway.complete.assert_not_called()


class TestOracleErrors:
    """Tests for oracle error mapping."""

    @pytest.mark.asyncio
    async def test_authentication_is_fatal(self, settings, mock_gateway, items):
        """Test a rejected credential raises OracleAuthenticationError."""
        mock_gateway.complete.side_effect = ProviderAuthenticationError("401")
        with pytest.raises(OracleAuthenticationError):
            await LLMRuleOracle(gateway=mock_gateway, settings=settings).extract_batch(items)

    @pytest.mark.asyncio
    async def test_gateway_failure_is_batch_error(self, settings, mock_gateway, items):
        """Test other gateway failures only fail the batch."""
        mock_gateway.complete.side_effect = GatewayError("boom")
        with pytest.raises(OracleBatchError):
            await LLMRuleOracle(gateway=mock_gateway, settings=settings).extract_batch(items)

    @pytest.mark.asyncio
    async def test_malformed_json(self, settings, mock_gateway, items):
        """Test non-JSON content is a batch error."""
        mock_gateway.complete.return_value = LLMResponse(content="Üzgünüm, yardımcı olamam.", model="m")
        with pytest.raises(OracleBatchError):
            await LLMRuleOracle(gateway=mock_gateway, settings=settings).extract_batch(items)

    @pytest.mark.asyncio
    async def test_non_object_reply(self, settings, mock_gateway, items):
        """Test a top-level list reply is a batch error."""
        mock_gateway.complete.return_value = _reply([1, 2])
        with pytest.raises(OracleBatchError):
            await LLMRuleOracle(gateway=mock_gateway, settings=settings).extract_batch(items)


def test_build_user_prompt_counts_items(items):
    """Test the prompt states how many descriptions follow."""
    assert build_user_prompt(items).startswith("Aşağıdaki 2 açıklama")
