"""
Structured extraction client for pension certificates.

Sends the reconstructed layout and the raw OCR text to a chat completion
service and asks for a fixed-shape JSON object. The request is made in two
explicit steps:

- :class:`PrimaryAttempt` requests a strict ``json_schema`` response;
- :class:`FallbackAttempt` reuses the same messages with a loose
  ``json_object`` response, and runs only when :func:`should_fall_back`
  accepts the primary error.

Every other failure propagates to the caller as an
:class:`~certforge.extraction.error_handling.ExtractionClientError`.
"""

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from .error_handling import (
    EmptyResponseError,
    ExtractionClientError,
    MissingCredentialsError,
    ProviderRequestError,
    ProviderTimeoutError,
    UnparseableResponseError,
    UnsupportedRequestShapeError,
)
from .models import (
    CertificatePayload,
    ExtractionMode,
    ExtractionRecord,
    LooseJsonResponse,
    ProviderResponse,
    SchemaConstrainedResponse,
)
from .registry import AMOUNT_FIELDS, FIELD_NAMES, FIELD_REGISTRY, FieldKind
from ..config import ClientConfig

logger = logging.getLogger(__name__)

# Provider messages that identify a rejected response_format / parameter set.
SHAPE_ERROR_RE = re.compile(r"response_format|json_schema|unsupported|temperature|verbosity",
                            re.IGNORECASE)

SYSTEM_PROMPT = """\
You are an expert extractor for Swiss occupational pension certificates
(2nd pillar, LPP/BVG). Certificates are written in French, German, Italian
or English. Return ONLY a JSON object matching the requested shape, with no
text outside the JSON.

VALUE SELECTION
- For each target label, take the CHF amount printed furthest to the RIGHT on
  the same line as the label.
- If that line holds no credible amount, look in the same column 1 to 3 lines
  BELOW; as a last resort 1 to 3 lines ABOVE.
- IGNORE percentages (%) whenever an amount is present. Never return a
  percentage as an amount.
- If the line states a monthly periodicity ("par mois", "mensuel",
  "monatlich", "al mese", "per month"), convert annuities to yearly values
  (x12) and mention the conversion in "issues".

PROJECTION TABLES
- NEVER use amounts from "Prestations de vieillesse ... <age> ans ..."
  ("Altersleistungen ... Jahre", "prestazioni di vecchiaia ... anni") tables
  for "avoirVieillesse" or "avoirVieillesseSelonLpp": those are projections at
  a future age, not the current balance.
- Do not confuse the conversion rate with the projected interest rate.

UNCERTAINTY
- When a value is not clearly printed, return null and add an explicit issue.
- Do not invent values or dates and do not compute values that are printed.

OUTPUT
- Numbers without thousands separators, decimal point.
- For every non-null field add a proof entry with a short snippet copied from
  the line used.
- Report "confidence" in [0, 1].
"""

LAYOUT_GUIDE = """\
Layout hints are reconstructed lines: idx, page, text, x1, x2 (horizontal
span) and yMid (vertical position). Amount columns are right-aligned; a label
and its value share a yMid. Prefer same line > below > above.
"""

FIELD_GUIDE = """\
Fields and typical labels (FR / DE / IT):
- caisse: "Caisse de pensions" / "Pensionskasse" / "Cassa pensioni"
- employeur: "Employeur" / "Arbeitgeber" / "Datore di lavoro"
- dateCertificat: "Certificat valable des" / "Gueltig ab" / "Valido dal" (DD.MM.YYYY or YYYY-MM-DD)
- prenom, nom: "Prenom", "Nom" / "Vorname", "Name" / "Nome", "Cognome"
- dateNaissance: "Date de naissance" / "Geburtsdatum" / "Data di nascita"
- salaireDeterminant: "Salaire determinant" / "Massgebender Lohn" / "Salario determinante"
- deductionCoordination: "Deduction de coordination" / "Koordinationsabzug" / "Deduzione di coordinamento"
- salaireAssureEpargne, salaireAssureRisque: insured salary for savings / for risks
- avoirVieillesse: "Avoir de vieillesse au <date>" / "Altersguthaben per" / "Avere di vecchiaia al"
- avoirVieillesseSelonLpp: "dont selon LPP" / "davon nach BVG" / "di cui secondo LPP"
- interetProjetePct: projected interest rate in percent (1.5 for 1,5%)
- renteInvaliditeAnnuelle: "Rente d'invalidite" / "Invalidenrente" / "Rendita d'invalidita"
- renteEnfantInvaliditeAnnuelle: "Rente d'enfant d'invalide" / "Invaliden-Kinderrente"
- renteConjointAnnuelle: spouse / widow(er) / partner annuity
- renteOrphelinAnnuelle: "Rente d'orphelin" / "Waisenrente" / "Rendita per orfano"
- capitalDeces: "Capital deces" / "Todesfallkapital" / "Capitale decesso"
- capitalRetraite65, renteRetraite65Annuelle: capital / yearly annuity at age 65
- rachatPossible: "Rachat possible" / "Moeglicher Einkauf" / "Riscatto possibile"
- eplDisponible: "Versement anticipe EPL" / "WEF-Vorbezug" / "Prelievo anticipato abitazione"
- miseEnGage: "Mise en gage" / "Verpfaendung" (true / false)
- remarques: free text remarks
"""

FINAL_INSTRUCTION = (
    "Return ONLY the final JSON object with every field. Unknown fields must be "
    "null. Include one proof entry (with its field name) per non-null field and a "
    "confidence in [0, 1]."
)


def _json_type(kind: FieldKind) -> List[str]:
    if kind in (FieldKind.AMOUNT, FieldKind.ANNUITY, FieldKind.PERCENT):
        return ["number", "null"]
    if kind == FieldKind.BOOLEAN:
        return ["boolean", "null"]
    return ["string", "null"]


def build_response_schema() -> Dict[str, Any]:
    """
    JSON schema for the strict response mode.

    Strict mode requires every property to be listed as required, so absent
    values are expressed as null and proofs are an array of entries.
    """
    nullable_number = {"type": ["number", "null"]}
    properties: Dict[str, Any] = {
        name: {"type": _json_type(FIELD_REGISTRY[name].kind)} for name in FIELD_NAMES
    }
    properties["proofs"] = {
        "type": "array",
        "items": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "field": {"type": "string"},
                "snippet": {"type": "string"},
                "page": nullable_number,
                "x1": nullable_number,
                "y1": nullable_number,
                "x2": nullable_number,
                "y2": nullable_number,
            },
            "required": ["field", "snippet", "page", "x1", "y1", "x2", "y2"],
        },
    }
    properties["confidence"] = nullable_number
    properties["issues"] = {"type": "array", "items": {"type": "string"}}
    return {
        "type": "object",
        "additionalProperties": False,
        "properties": properties,
        "required": list(properties),
    }


def build_messages(raw_text: str, lines: Sequence[Any], config: ClientConfig) -> List[Dict[str, str]]:
    """
    Build the chat messages for one certificate.

    Args:
        raw_text: Full OCR text of the document
        lines: Reconstructed lines, used as positional hints
        config: Client configuration (caps on hints and text)

    Returns:
        Messages in chat completion format
    """
    hints = [line.to_hint(i) for i, line in enumerate(lines[:config.max_layout_lines])]
    hints_json = json.dumps(hints, ensure_ascii=False)[:config.max_hint_chars]
    text = (raw_text or "")[:config.max_text_chars]

    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": f"Layout reading guide:\n{LAYOUT_GUIDE}\nLayout hints (JSON):\n{hints_json}"},
        {"role": "user", "content": (
            "OCR text of the pension certificate (may be incomplete or noisy).\n\n"
            f"{FIELD_GUIDE}\n--- OCR TEXT ---\n{text}"
        )},
        {"role": "user", "content": FINAL_INSTRUCTION},
    ]


class CompletionProvider(ABC):
    """Chat completion service returning the raw message content."""

    @abstractmethod
    async def complete(self, messages: List[Dict[str, str]], response_format: Dict[str, Any],
                       timeout: float) -> str:
        """
        Run one completion request.

        Raises:
            UnsupportedRequestShapeError: The response_format was rejected
            ProviderRequestError: Any other request failure
            EmptyResponseError: The response carried no content
        """


class OpenAICompletionProvider(CompletionProvider):
    """Completion provider backed by the OpenAI chat completions API."""

    def __init__(self, config: Optional[ClientConfig] = None, client: Any = None):
        self.config = config or ClientConfig()
        self._client = client

    def _get_client(self):
        if self._client is None:
            api_key = self.config.resolve_api_key()
            if not api_key:
                raise MissingCredentialsError(
                    f"{self.config.api_key_env} is missing",
                    details={"hint": f"Set {self.config.api_key_env} in the environment or .env file"}
                )
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(
                api_key=api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout_seconds,
                max_retries=0
            )
        return self._client

    async def complete(self, messages: List[Dict[str, str]], response_format: Dict[str, Any],
                       timeout: float) -> str:
        import openai

        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=self.config.model,
                messages=messages,
                response_format=response_format,
                timeout=timeout
            )
        except openai.BadRequestError as e:
            details = {"status_code": e.status_code, "model": self.config.model}
            if SHAPE_ERROR_RE.search(str(e)):
                raise UnsupportedRequestShapeError(str(e), details=details) from e
            raise ProviderRequestError(str(e), details=details) from e
        except openai.APITimeoutError as e:
            raise ProviderTimeoutError(f"Request timed out after {timeout}s", details={"model": self.config.model}) from e
        except openai.APIError as e:
            raise ProviderRequestError(str(e), details={"model": self.config.model}) from e

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise EmptyResponseError("Completion returned no content", details={"model": self.config.model})
        return content


def parse_json_content(content: str) -> Dict[str, Any]:
    """Decode message content into a JSON object or raise UnparseableResponseError."""
    text = (content or "").strip()
    if not text:
        raise EmptyResponseError("Completion returned no content")
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise UnparseableResponseError(f"Response is not valid JSON: {e}", details={"preview": text[:200]}) from e
    if not isinstance(parsed, dict):
        raise UnparseableResponseError(
            f"Response must be a JSON object, got {type(parsed).__name__}",
            details={"preview": text[:200]}
        )
    return parsed


def should_fall_back(error: Exception) -> bool:
    """Only a rejected request shape triggers the loose response mode."""
    return isinstance(error, UnsupportedRequestShapeError)


@dataclass(frozen=True)
class PrimaryAttempt:
    """Strict json_schema response mode."""
    schema_name: str

    def response_format(self) -> Dict[str, Any]:
        return {
            "type": "json_schema",
            "json_schema": {"name": self.schema_name, "schema": build_response_schema(), "strict": True},
        }

    def wrap(self, data: Dict[str, Any]) -> ProviderResponse:
        return SchemaConstrainedResponse(data)


@dataclass(frozen=True)
class FallbackAttempt:
    """Loosely typed json_object response mode."""

    def response_format(self) -> Dict[str, Any]:
        return {"type": "json_object"}

    def wrap(self, data: Dict[str, Any]) -> ProviderResponse:
        return LooseJsonResponse(data)


def harmonise_insured_salaries(record: ExtractionRecord) -> None:
    """Copy the insured salary across when only savings or risk is known."""
    savings = record.get("salaireAssureEpargne")
    risk = record.get("salaireAssureRisque")
    if risk is None and savings is not None:
        record.set("salaireAssureRisque", savings)
        record.add_issue("salaireAssureRisque copied from salaireAssureEpargne (not distinguished)")
    elif savings is None and risk is not None:
        record.set("salaireAssureEpargne", risk)
        record.add_issue("salaireAssureEpargne copied from salaireAssureRisque (not distinguished)")


def record_from_payload(payload: CertificatePayload, mode: ExtractionMode,
                        config: Optional[ClientConfig] = None) -> ExtractionRecord:
    """
    Turn a validated payload into a record with numeric hygiene applied.

    Non-finite numbers are already None after validation; amount fields equal
    to 0 are treated as absent; confidence is clamped to [0, 1] and defaults to
    ``config.default_confidence``.
    """
    config = config or ClientConfig()
    fields = payload.field_values()
    for name in AMOUNT_FIELDS:
        if fields.get(name) == 0:
            fields[name] = None

    confidence = payload.confidence
    if confidence is None:
        confidence = config.default_confidence
    confidence = max(0.0, min(1.0, confidence))

    record = ExtractionRecord(
        fields=fields,
        proofs={name: proof.to_proof() for name, proof in payload.proofs.items()
                if name in FIELD_REGISTRY and proof.snippet},
        confidence=confidence,
        issues=list(payload.issues),
        extraction_mode=mode
    )
    harmonise_insured_salaries(record)
    return record


class StructuredExtractionClient:
    """
    Orchestrates the completion request for one document.

    The client holds no per-document state; a single instance can serve
    concurrent documents.
    """

    def __init__(self, config: Optional[ClientConfig] = None,
                 provider: Optional[CompletionProvider] = None):
        self.config = config or ClientConfig()
        self.provider = provider or OpenAICompletionProvider(self.config)
        self.primary = PrimaryAttempt(self.config.schema_name)
        self.fallback = FallbackAttempt()

    async def _run(self, attempt, messages: List[Dict[str, str]]) -> ProviderResponse:
        timeout = self.config.timeout_seconds
        try:
            content = await asyncio.wait_for(
                self.provider.complete(messages, attempt.response_format(), timeout),
                timeout=timeout
            )
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(f"Completion timed out after {timeout}s") from e
        return attempt.wrap(parse_json_content(content))

    async def request(self, raw_text: str, lines: Sequence[Any]) -> ProviderResponse:
        """
        Obtain the raw provider response, falling back once if required.

        Raises:
            ExtractionClientError: Any failure other than the single accepted fallback
        """
        messages = build_messages(raw_text, lines, self.config)
        try:
            return await self._run(self.primary, messages)
        except ExtractionClientError as e:
            if not should_fall_back(e):
                raise
            logger.warning(f"Strict response mode rejected, retrying with json_object: {e}")
        return await self._run(self.fallback, messages)

    async def extract(self, raw_text: str, lines: Sequence[Any]) -> ExtractionRecord:
        """
        Extract a record from the OCR text and reconstructed lines.

        Args:
            raw_text: Full OCR text
            lines: Reconstructed lines in reading order

        Returns:
            ExtractionRecord from the client, before corrections and validation
        """
        response = await self.request(raw_text, lines)
        try:
            payload = response.to_payload()
        except ValidationError as e:
            raise UnparseableResponseError(f"Response does not match the certificate shape: {e}") from e
        mode = (ExtractionMode.STRUCTURED if isinstance(response, SchemaConstrainedResponse)
                else ExtractionMode.STRUCTURED_FALLBACK)
        record = record_from_payload(payload, mode, self.config)
        logger.info(
            f"Structured extraction ({mode.value}): "
            f"{sum(1 for v in record.fields.values() if v is not None)} fields, "
            f"confidence={record.confidence:.2f}"
        )
        return record
