"""
Configuration for the certificate extraction pipeline.

All tuning constants live in explicit dataclasses that are passed down to the
components needing them; nothing reads ambient state except
:meth:`PipelineConfig.from_env`. The layout constants (line tolerance,
search window, column tolerance) are empirical defaults.
"""

import logging
import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class LayoutConfig:
    """Line clustering and positional search settings (OCR geometry units)."""
    line_tolerance: float = 6.0
    search_window: int = 3
    column_tolerance: float = 4.0


@dataclass
class ClientConfig:
    """Structured extraction client settings."""
    model: str = "gpt-4o"
    api_key_env: str = "OPENAI_API_KEY"
    base_url: Optional[str] = None
    timeout_seconds: float = 120.0
    max_layout_lines: int = 500
    max_hint_chars: int = 100_000
    max_text_chars: int = 100_000
    default_confidence: float = 0.7
    schema_name: str = "pension_certificate_extract"

    def resolve_api_key(self) -> Optional[str]:
        key = os.getenv(self.api_key_env, "").strip()
        return key or None


def _default_annuity_floors() -> Dict[str, float]:
    return {
        "renteInvaliditeAnnuelle": 1000.0,
        "renteEnfantInvaliditeAnnuelle": 500.0,
        "renteConjointAnnuelle": 1000.0,
        "renteOrphelinAnnuelle": 500.0,
        "renteRetraite65Annuelle": 1000.0,
    }


@dataclass
class ValidationConfig:
    """Plausibility checks and confidence aggregation settings."""
    annuity_floors: Dict[str, float] = field(default_factory=_default_annuity_floors)
    proof_bonus: float = 0.1
    min_proofs_for_bonus: int = 3
    issue_penalty: float = 0.05
    review_threshold: float = 0.6
    projection_ratio: float = 5.0


@dataclass
class ClassifierConfig:
    """Which pages count as "later pages" for certificate detection (0-based slice)."""
    later_page_start: int = 1
    later_page_end: int = 5


@dataclass
class PipelineConfig:
    """Main pipeline configuration."""
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)

    # Batch processing
    max_concurrency: int = 4

    # "degrade" -> layout-only record, "fail" -> document fails
    on_client_error: str = "degrade"
    degraded_confidence: float = 0.3
    use_llm: bool = True

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise ValueError on inconsistent settings."""
        if self.on_client_error not in ("degrade", "fail"):
            raise ValueError(
                f"on_client_error must be 'degrade' or 'fail', got {self.on_client_error!r}"
            )
        if self.max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {self.max_concurrency}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "PipelineConfig":
        """
        Build a configuration from environment variables.

        A ``.env`` file is loaded first (without overriding variables already
        set in the process environment).
        """
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=dotenv_path, override=False)

        config = cls()
        if os.environ.get("CERTFORGE_MODEL"):
            config.client.model = os.environ["CERTFORGE_MODEL"]
        if os.environ.get("OPENAI_BASE_URL"):
            config.client.base_url = os.environ["OPENAI_BASE_URL"]
        if os.environ.get("CERTFORGE_TIMEOUT"):
            config.client.timeout_seconds = float(os.environ["CERTFORGE_TIMEOUT"])
        if os.environ.get("CERTFORGE_MAX_CONCURRENCY"):
            config.max_concurrency = max(1, int(os.environ["CERTFORGE_MAX_CONCURRENCY"]))
        if os.environ.get("CERTFORGE_LINE_TOLERANCE"):
            config.layout.line_tolerance = float(os.environ["CERTFORGE_LINE_TOLERANCE"])
        if os.environ.get("CERTFORGE_ON_CLIENT_ERROR"):
            mode = os.environ["CERTFORGE_ON_CLIENT_ERROR"].strip().lower()
            if mode not in ("degrade", "fail"):
                raise ValueError(f"CERTFORGE_ON_CLIENT_ERROR must be 'degrade' or 'fail', got {mode!r}")
            config.on_client_error = mode

        logger.debug(f"Configuration loaded from environment: model={config.client.model}")
        return config
