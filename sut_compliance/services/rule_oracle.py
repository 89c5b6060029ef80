"""
Rule-Extraction Oracle.

A second rule source for descriptions whose meaning the regex layer is
likely to miss (negated specialty clauses, conditional tiers). The
oracle answers per batch; every returned rule is validated against the
typed parameter union and invalid ones are dropped.
"""

import logging
from typing import Any, Optional, Protocol, Sequence

from pydantic import TypeAdapter, ValidationError

from sut_compliance.core.config import ComplianceSettings, get_compliance_settings
from sut_compliance.core.enums import ExtractionMethod
from sut_compliance.gateways.base import (
    GatewayError,
    MalformedResponseError,
    ProviderAuthenticationError,
)
from sut_compliance.gateways.llm_gateway import LLMGateway, LLMRequest
from sut_compliance.schemas.oracle import (
    OracleItemResult,
    OracleRawItem,
    OracleRawRule,
    OracleRequestItem,
)
from sut_compliance.schemas.rules import ParsedRule, RuleParams
from sut_compliance.utils.errors import OracleAuthenticationError, OracleBatchError

logger = logging.getLogger(__name__)

_PARAMS_ADAPTER: TypeAdapter[Any] = TypeAdapter(RuleParams)


class RuleOracle(Protocol):
    """Anything that turns a batch of descriptions into typed rules."""

    async def extract_batch(self, items: Sequence[OracleRequestItem]) -> dict[int, OracleItemResult]:
        """
        Extract rules for one batch.

        Returns a mapping from each item's ``local_index`` to its result.

        Raises:
            OracleAuthenticationError: Credential rejected (fatal)
            OracleBatchError: This batch's reply is unusable
        """
        ...


SYSTEM_PROMPT = """Sen Sağlık Uygulama Tebliği (SUT) ve eki fiyat listeleri konusunda uzman bir mevzuat analistisin.
Görev: Verilen işlem açıklamalarından yapılandırılmış faturalama kuralları çıkar.

KURAL TİPLERİ (kind) ve PARAMETRELERİ (params):

1. tier_restriction: İşlemin faturalandırılabileceği basamaklar.
   params: {"tiers": [1|2|3], "mode": "exact" | "at_least"}
   DİKKAT: "üçüncü basamakta %30 ilave edilir" gibi puan artışı ifadeleri basamak kısıtı DEĞİLDİR,
   bunları general_note olarak işaretle.

2. specialty_restriction: İşlemi yapabilecek uzmanlık dalları.
   params: {"specialties": ["..."], "mode": "only" | "included" | "excluded"}
   - "sadece/yalnızca X uzmanlarınca" -> mode "only"
   - "X uzmanları tarafından yapılması halinde" -> mode "included"
   - "X haricindeki/dışındaki hekimlerce" -> mode "excluded"
   - "X tarafından da faturalandırılabilir" gibi genişletici ifadeler kısıt DEĞİLDİR.

3. mutual_exclusion: Aynı seansta birlikte faturalandırılamayan işlemler.
   params: {"codes": ["..."], "any_other": false, "same_tooth": false}
   "başka bir işlemle birlikte faturalandırılamaz" -> "any_other": true

4. frequency_limit: Sıklık sınırı.
   params: {"period": "day" | "week" | "month" | "year" | "all" | "day_interval" | "month_interval",
            "limit": N, "same_specialty": false, "same_tooth": false}
   "30 gün içinde bir" -> day_interval, limit 30; "ömründe bir kez" -> all, limit 1

5. diagnosis_condition: Gerekli ICD-10 tanıları.
   params: {"codes": ["..."], "condition": "serbest metin veya null"}

6. dental_treatment: Diş numarası gerektiren diş tedavisi kuralları.
   params: {"note": "..."}

7. age_restriction: Yaş sınırı.
   params: {"mode": "under" | "over" | "between", "min_age": N | null, "max_age": N | null}

8. general_note: Yukarıdakilere girmeyen önemli bilgiler, puan artışları vb.
   params: {"text": "..."}

YANIT KURALLARI:
- Her açıklama için ayrı sonuç döndür; bir açıklamada birden fazla kural olabilir.
- Her kurala 0-1 arası "confidence" ve kısa "explanation" ekle.
- Metinde geçen başka işlem kodlarını veya SUT maddelerini "crossRefs" listesine yaz.
- Branş adlarını küçük harfle yaz.
- Kural yoksa boş liste kullan.

ÖRNEK:
Girdi: [0] (530010, EK-2B) "Sadece radyoloji uzmanları tarafından yapılması halinde faturalandırılır."
Çıktı: {"0": {"rules": [{"kind": "specialty_restriction", "params": {"specialties": ["radyoloji"], "mode": "only"},
"confidence": 0.95, "explanation": "Yalnızca radyoloji uzmanları."}], "crossRefs": []}}"""


def build_user_prompt(items: Sequence[OracleRequestItem]) -> str:
    """List the batch as ``[i] (code, source) "description"`` lines."""
    lines = "\n".join(
        f'[{item.local_index}] ({item.code}, {item.source.value}) "{item.description}"' for item in items
    )
    return (
        f"Aşağıdaki {len(items)} açıklama metnini analiz et.\n\n"
        f"{lines}\n\n"
        'YANIT: Yalnızca JSON objesi döndür, anahtar olarak köşeli parantezdeki numaraları kullan:\n'
        '{"0": {"rules": [...], "crossRefs": [...], "explanation": "..."}, "1": {...}}'
    )


class LLMRuleOracle:
    """
    Rule oracle backed by the LLM gateway.

    Example:
        >>> oracle = LLMRuleOracle()
        >>> results = await oracle.extract_batch(items)
    """

    def __init__(
        self,
        gateway: Optional[LLMGateway] = None,
        settings: Optional[ComplianceSettings] = None,
    ):
        self.settings = settings or get_compliance_settings()
        self.gateway = gateway or LLMGateway(self.settings)

    async def extract_batch(self, items: Sequence[OracleRequestItem]) -> dict[int, OracleItemResult]:
        if not items:
            return {}
        request = LLMRequest(
            user_prompt=build_user_prompt(items),
            system_prompt=SYSTEM_PROMPT,
            temperature=0.0,
            max_tokens=self.settings.LLM_MAX_TOKENS,
        )
        try:
            response = await self.gateway.complete(request)
            reply = response.parse_json()
        except ProviderAuthenticationError as e:
            raise OracleAuthenticationError(
                "Oracle credential is invalid or expired; provide a new API key"
            ) from e
        except MalformedResponseError as e:
            raise OracleBatchError(f"Oracle reply is not valid JSON: {e}") from e
        except GatewayError as e:
            raise OracleBatchError(f"Oracle request failed: {e}") from e

        if not isinstance(reply, dict):
            raise OracleBatchError(f"Oracle reply must be a JSON object, got {type(reply).__name__}")

        logger.debug("Oracle batch of %d items answered (%s tokens)", len(items), response.usage.get("total_tokens"))
        return {item.local_index: self._parse_item(item, reply.get(str(item.local_index))) for item in items}

    def _parse_item(self, item: OracleRequestItem, value: Any) -> OracleItemResult:
        if value is None:
            return OracleItemResult()
        try:
            # A bare list is accepted as the rule list
            raw = OracleRawItem(rules=value) if isinstance(value, list) else OracleRawItem.model_validate(value)
        except ValidationError as e:
            logger.warning("Oracle item %s (%s) has an unusable shape: %s", item.local_index, item.code, e)
            return OracleItemResult()

        rules = [rule for rule in (self._to_rule(item, r) for r in raw.rules) if rule is not None]
        return OracleItemResult(rules=rules, cross_refs=raw.cross_refs, explanation=raw.explanation)

    def _to_rule(self, item: OracleRequestItem, raw: OracleRawRule) -> Optional[ParsedRule]:
        try:
            params = _PARAMS_ADAPTER.validate_python({**raw.params, "kind": raw.kind})
        except ValidationError as e:
            logger.warning(
                "Dropping oracle rule %r for %s: %d invalid field(s)", raw.kind, item.code, e.error_count()
            )
            return None

        confidence = raw.confidence if raw.confidence is not None else self.settings.ORACLE_DEFAULT_CONFIDENCE
        return ParsedRule(
            params=params,
            source_text=item.description,
            origin_source=item.source,
            confidence=min(max(confidence, 0.0), 1.0),
            extraction_method=ExtractionMethod.ORACLE,
            explanation=raw.explanation,
        )
