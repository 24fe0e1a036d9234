"""
Static field registry for pension certificate extraction.

Every record field is described by a :class:`FieldSpec`: its kind, whether a
monthly figure must be annualized, whether it denotes a current balance, and an
ordered list of per-language label patterns. Components iterate the registry
explicitly instead of carrying their own regexes, so per-language coverage can
be tested field by field.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

LANGUAGES = ("fr", "de", "it", "en")


class FieldKind(Enum):
    """Value type of a record field."""
    TEXT = "text"
    DATE = "date"
    AMOUNT = "amount"
    ANNUITY = "annuity"
    PERCENT = "percent"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class LabelPattern:
    """One language's label regex for a field (matched case-insensitively)."""
    language: str
    pattern: str

    @property
    def regex(self) -> Pattern:
        return _compile(self.pattern)


@lru_cache(maxsize=None)
def _compile(pattern: str) -> Pattern:
    return re.compile(pattern, re.IGNORECASE)


@dataclass(frozen=True)
class LabelMatch:
    """Where a field label was found in a sequence of line texts."""
    field_name: str
    line_index: int
    start: int
    end: int
    language: str


@dataclass(frozen=True)
class FieldSpec:
    """Description of a single record field."""
    name: str
    kind: FieldKind
    labels: Tuple[LabelPattern, ...] = ()
    annualize_if_monthly: bool = False
    current_balance: bool = False
    correctable: bool = False

    @property
    def is_numeric(self) -> bool:
        return self.kind in (FieldKind.AMOUNT, FieldKind.ANNUITY, FieldKind.PERCENT)

    @property
    def zero_means_absent(self) -> bool:
        return self.kind in (FieldKind.AMOUNT, FieldKind.ANNUITY)

    def patterns_for(self, language: str) -> List[LabelPattern]:
        return [label for label in self.labels if label.language == language]

    def search(self, text: str) -> Optional[Tuple[re.Match, str]]:
        """Return the first label match in ``text`` and its language."""
        for label in self.labels:
            match = label.regex.search(text)
            if match:
                return match, label.language
        return None


def _labels(**per_language: str) -> Tuple[LabelPattern, ...]:
    return tuple(LabelPattern(language, per_language[language])
                 for language in LANGUAGES if language in per_language)


FIELD_SPECS: Tuple[FieldSpec, ...] = (
    FieldSpec("employeur", FieldKind.TEXT, _labels(
        fr=r"\bemployeur\b",
        de=r"\barbeitgeber(?:in)?\b",
        it=r"\bdatore\s+di\s+lavoro\b",
        en=r"\bemployer\b",
    )),
    FieldSpec("caisse", FieldKind.TEXT, _labels(
        fr=r"\bcaisse\s+de\s+pensions?\b",
        de=r"\bpensionskasse\b",
        it=r"\bcassa\s+pensioni\b",
        en=r"\bpension\s+fund\b",
    )),
    FieldSpec("dateCertificat", FieldKind.DATE, _labels(
        fr=r"\bcertificat\s+valable\s+d[èe]s\b",
        de=r"\bg[üu]ltig\s+ab\b",
        it=r"\bvalido\s+dal\b",
        en=r"\bvalid\s+(?:from|as\s+of)\b",
    )),
    FieldSpec("prenom", FieldKind.TEXT, _labels(
        fr=r"\bpr[ée]nom\b",
        de=r"\bvorname\b",
        it=r"\bnome\b",
        en=r"\bfirst\s+name\b",
    )),
    FieldSpec("nom", FieldKind.TEXT, _labels(
        fr=r"(?<!pr[ée])\bnom\b",
        de=r"\b(?:nachname|name)\b",
        it=r"\bcognome\b",
        en=r"\b(?:last\s+name|surname)\b",
    )),
    FieldSpec("dateNaissance", FieldKind.DATE, _labels(
        fr=r"\bdate\s+de\s+naissance\b",
        de=r"\bgeburtsdatum\b",
        it=r"\bdata\s+di\s+nascita\b",
        en=r"\bdate\s+of\s+birth\b",
    )),
    FieldSpec("salaireDeterminant", FieldKind.AMOUNT, _labels(
        fr=r"\bsalaire\s+(?:annuel\s+)?d[ée]terminant\b",
        de=r"\bmassgebende[rs]?\s+(?:jahres)?lohn\b",
        it=r"\bsalario\s+(?:annuo\s+)?determinante\b",
        en=r"\b(?:relevant|reference)\s+(?:annual\s+)?salary\b",
    )),
    FieldSpec("deductionCoordination", FieldKind.AMOUNT, _labels(
        fr=r"\bd[ée]d(?:uction|\.)\s*(?:de\s+)?coord(?:ination|\.)?",
        de=r"\bkoordinationsabzug\b",
        it=r"\bdeduzione\s+di\s+coordinamento\b",
        en=r"\bcoordination\s+deduction\b",
    )),
    FieldSpec("salaireAssureEpargne", FieldKind.AMOUNT, _labels(
        fr=r"\bsalaire\s+assur[ée]\s+(?:pour\s+l['’]\s*)?[ée]pargne\b",
        de=r"\b(?:versicherter\s+(?:lohn|gehalt)\s+(?:f[üu]r\s+)?(?:das\s+)?(?:alters)?sparen|sparlohn)\b",
        it=r"\bsalario\s+assicurato\s+(?:di\s+|per\s+il\s+)?risparmio\b",
        en=r"\binsured\s+salary\s+(?:for\s+)?savings\b",
    )),
    FieldSpec("salaireAssureRisque", FieldKind.AMOUNT, _labels(
        fr=r"\bsalaire\s+assur[ée]\s+(?:pour\s+les\s+)?risques?\b",
        de=r"\b(?:versicherter\s+(?:lohn|gehalt)\s+(?:f[üu]r\s+)?(?:die\s+)?risiko(?:leistungen)?|risikolohn)\b",
        it=r"\bsalario\s+assicurato\s+(?:di\s+|per\s+il\s+)?rischio\b",
        en=r"\binsured\s+salary\s+(?:for\s+)?risks?\b",
    )),
    FieldSpec("avoirVieillesse", FieldKind.AMOUNT, _labels(
        fr=r"\bavoir\s+de\s+vieillesse\b(?!\s+(?:selon\s+)?LPP\b)",
        de=r"\baltersguthaben\b(?!\s+(?:nach\s+)?BVG\b)",
        it=r"\bavere\s+di\s+vecchiaia\b(?!\s+(?:secondo\s+)?LPP\b)",
        en=r"\b(?:retirement|old[-\s]age)\s+(?:savings|assets)\b",
    ), current_balance=True),
    FieldSpec("avoirVieillesseSelonLpp", FieldKind.AMOUNT, _labels(
        fr=r"\b(?:dont\s+selon\s+LPP|avoir\s+de\s+vieillesse\s+(?:selon\s+)?LPP)\b",
        de=r"\b(?:davon\s+(?:nach\s+)?BVG|altersguthaben\s+(?:nach\s+)?BVG)\b",
        it=r"\b(?:di\s+cui\s+(?:secondo\s+)?LPP|avere\s+di\s+vecchiaia\s+(?:secondo\s+)?LPP)\b",
        en=r"\bof\s+which\s+(?:under\s+)?(?:BVG|LPP)\b",
    ), current_balance=True),
    FieldSpec("interetProjetePct", FieldKind.PERCENT, _labels(
        fr=r"\b(?:taux\s+d['’]\s*)?int[ée]r[êe]ts?\s+projet[ée]s?\b",
        de=r"\bprojektierte[rn]?\s+zins(?:satz)?\b",
        it=r"\b(?:tasso\s+d['’]\s*)?interess[ei]\s+proiettat[oi]\b",
        en=r"\bprojected\s+interest(?:\s+rate)?\b",
    )),
    FieldSpec("renteInvaliditeAnnuelle", FieldKind.ANNUITY, _labels(
        fr=r"\brente\s+d['’]\s*invalidit[éeè](?!.*\benfants?\b)",
        de=r"\binvalidenrente\b(?!.*\bkind)",
        it=r"\brendita\s+d['’]\s*invalidit[aà](?!.*\bbambin)",
        en=r"\b(?:invalidity|disability)\s+(?:annuity|pension)\b(?!.*\bchild)",
    ), annualize_if_monthly=True, correctable=True),
    FieldSpec("renteEnfantInvaliditeAnnuelle", FieldKind.ANNUITY, _labels(
        fr=r"\brente\s+d['’]\s*enfant\s+d['’]\s*invalid",
        de=r"\b(?:invaliden-?kinderrente|kinderrente\s*\(?\s*invalidit[äa]t)",
        it=r"\brendita\s+per\s+(?:figli|bambino)\s+(?:di|d['’]\s*)\s*invalidit",
        en=r"\b(?:disabled\s+person['’]?s\s+)?child(?:ren)?['’]?s?\s+(?:invalidity|disability)\s+(?:annuity|pension)\b",
    ), annualize_if_monthly=True, correctable=True),
    FieldSpec("renteConjointAnnuelle", FieldKind.ANNUITY, _labels(
        fr=r"\brente\s+de\s+(?:conjoint|veuf|veuve|partenaire)",
        de=r"\b(?:witwen-?\s*/?\s*(?:witwer)?rente|witwerrente|ehegattenrente|partnerrente)\b",
        it=r"\brendita\s+per\s+(?:coniuge|partner|vedov[ao])\b",
        en=r"\b(?:spouse|spouse['’]s|partner['’]?s?|widow(?:er)?['’]?s?)\s+(?:annuity|pension)\b",
    ), annualize_if_monthly=True, correctable=True),
    FieldSpec("renteOrphelinAnnuelle", FieldKind.ANNUITY, _labels(
        fr=r"\brente\s+d['’]\s*orphelins?\b",
        de=r"\bwaisenrente\b",
        it=r"\brendita\s+per\s+orfan[oi]\b",
        en=r"\borphan['’]?s?\s+(?:annuity|pension)\b",
    ), annualize_if_monthly=True, correctable=True),
    FieldSpec("capitalDeces", FieldKind.AMOUNT, _labels(
        fr=r"\b(?:capital(?:e)?\s+(?:en\s+cas\s+de\s+)?d[ée]c[èe]s|minim(?:al|um)?\s+d[ée]c[èe]s)",
        de=r"\btodesfall(?:kapital|summe)\b",
        it=r"\bcapitale\s+(?:in\s+caso\s+di\s+)?decesso\b",
        en=r"\b(?:death\s+(?:benefit\s+)?capital|lump[-\s]sum\s+death\s+benefit)\b",
    ), correctable=True),
    FieldSpec("capitalRetraite65", FieldKind.AMOUNT, _labels(
        fr=r"\bcapital(?:e)?\s+(?:de\s+)?retraite\s*(?:[àa]\s*)?\(?\s*65\s*ans\)?",
        de=r"\b(?:alterskapital|kapital\s+im\s+rentenalter)\s*(?:mit\s+)?65\b",
        it=r"\bcapitale\s+di\s+vecchiaia\s*(?:a\s+)?65\b",
        en=r"\bretirement\s+capital\s*(?:at\s+)?(?:age\s+)?65\b",
    ), correctable=True),
    FieldSpec("renteRetraite65Annuelle", FieldKind.ANNUITY, _labels(
        fr=r"\brente\s+(?:de\s+)?retraite\s*(?:[àa]\s*)?\(?\s*65\s*ans\)?",
        de=r"\baltersrente\s*(?:mit\s+|im\s+alter\s+)?65\b",
        it=r"\brendita\s+di\s+vecchiaia\s*(?:a\s+)?65\b",
        en=r"\bretirement\s+(?:annuity|pension)\s*(?:at\s+)?(?:age\s+)?65\b",
    ), annualize_if_monthly=True, correctable=True),
    FieldSpec("rachatPossible", FieldKind.AMOUNT, _labels(
        fr=r"\b(?:achat|rachat)\s+possible\b",
        de=r"\b(?:m[öo]glicher\s+einkauf|einkauf(?:ssumme)?\s+m[öo]glich|einkaufspotenzial)\b",
        it=r"\b(?:acquisto|riscatto)\s+possibile\b",
        en=r"\b(?:possible\s+buy[-\s]?in|buy[-\s]?in\s+possible|purchase\s+possible)\b",
    ), correctable=True),
    FieldSpec("eplDisponible", FieldKind.AMOUNT, _labels(
        fr=r"\bversement\s+anticip[ée]\s+(?:pour\s+la\s+propri[ée]t[ée]\s+du\s+logement\s+)?\(?(?:epl|wef)\b",
        de=r"\b(?:wef[-\s]?vorbezug|vorbezug\s+wef)\b",
        it=r"\bprelievo\s+anticipato\s+(?:per\s+l['’]\s*)?abitazione\b",
        en=r"\b(?:advance\s+)?withdrawal\s+for\s+home\s+ownership\b",
    ), correctable=True),
    FieldSpec("miseEnGage", FieldKind.BOOLEAN, _labels(
        fr=r"\bmise\s+en\s+gage\b",
        de=r"\bverpf[äa]ndung\b",
        it=r"\bcostituzione\s+in\s+pegno\b",
        en=r"\bpledg(?:e|ing)\b",
    )),
    FieldSpec("remarques", FieldKind.TEXT, _labels(
        fr=r"\bremarques?\b",
        de=r"\bbemerkungen?\b",
        it=r"\bosservazioni\b",
        en=r"\bremarks?\b",
    )),
)

FIELD_REGISTRY: Dict[str, FieldSpec] = {spec.name: spec for spec in FIELD_SPECS}

FIELD_NAMES: Tuple[str, ...] = tuple(spec.name for spec in FIELD_SPECS)

AMOUNT_FIELDS: Tuple[str, ...] = tuple(
    spec.name for spec in FIELD_SPECS if spec.zero_means_absent
)
ANNUITY_FIELDS: Tuple[str, ...] = tuple(
    spec.name for spec in FIELD_SPECS if spec.kind == FieldKind.ANNUITY
)
CURRENT_BALANCE_FIELDS: Tuple[str, ...] = tuple(
    spec.name for spec in FIELD_SPECS if spec.current_balance
)
CORRECTION_FIELDS: Tuple[str, ...] = tuple(
    spec.name for spec in FIELD_SPECS if spec.correctable
)

# Pledge flag families; exactly one must match for the flag to be set.
YES_PATTERN = re.compile(r"\b(?:oui|ja|s[iì]|yes)\b", re.IGNORECASE)
NO_PATTERN = re.compile(r"\b(?:non|nein|no)\b", re.IGNORECASE)


def get_field(name: str) -> FieldSpec:
    """Look up a field spec by name, raising KeyError for unknown fields."""
    return FIELD_REGISTRY[name]


def label_patterns(name: str, language: str) -> List[LabelPattern]:
    """Label patterns registered for ``name`` in one language."""
    return get_field(name).patterns_for(language)


def find_label_line(texts: Sequence[str], name: str) -> Optional[LabelMatch]:
    """
    Find the first line whose text carries the label of field ``name``.

    Args:
        texts: Line texts in reading order
        name: Registered field name

    Returns:
        LabelMatch for the first matching line, or None
    """
    spec = get_field(name)
    for index, text in enumerate(texts):
        found = spec.search(text)
        if found:
            match, language = found
            return LabelMatch(spec.name, index, match.start(), match.end(), language)
    return None
