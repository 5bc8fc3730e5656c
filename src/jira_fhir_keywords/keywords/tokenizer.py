"""Keyword sanitizing and classification.

Tokens are whitespace-delimited pieces of issue text. Each token is reduced to
a keyword made of lower-case letters and digits, and classified as a stop
word, a FHIR element path, a FHIR operation name or an ordinary word.

The casing of the first letter survives sanitizing: many element path
segments collide with English words once lower-cased, and an upper-case first
letter ("Patient.name" vs "patient") marks the author's intent to reference
the FHIR element.
"""

import re
import unicodedata
from typing import NamedTuple

from jira_fhir_keywords.keywords.models import KeywordType, ReferenceData

MIN_KEYWORD_LENGTH = 3

# Prefix marking a FHIR operation invocation, e.g. "$everything"
OPERATION_MARKER = "$"

HTML_TAG_PATTERN = re.compile(r"<.*?>")

_UPPER_CATEGORIES = frozenset({"Lu", "Lt"})
_SYMBOL_CATEGORIES = frozenset(
    {"Pc", "Pd", "Ps", "Pe", "Pi", "Pf", "Po", "Sm", "Sc", "Sk", "So"}
)


class SanitizedKeyword(NamedTuple):
    """Result of sanitizing a single token.

    first_letter is the empty string when the token holds no letter.
    """

    keyword: str
    first_letter: str
    prefix_symbol: str | None

    @property
    def has_letter(self) -> bool:
        return self.first_letter != ""


class ClassifiedKeyword(NamedTuple):
    """A keyword ready for counting."""

    keyword: str
    keyword_type: KeywordType
    from_lemma: bool = False


def sanitize_as_keyword(text: str | None) -> SanitizedKeyword:
    """
    Reduce a token to lower-case letters and digits.

    Scans by Unicode category:
    - Upper/titlecase letters are lower-cased; lowercase letters and decimal
      digits are kept as-is.
    - The first letter seen is remembered in its original case.
    - Punctuation and symbols are dropped; the first one seen before any
      letter is remembered as the prefix symbol.
    - Everything else (marks, separators, controls, ...) is ignored.

    Examples:
        >>> sanitize_as_keyword("Patient.name")
        SanitizedKeyword(keyword='patientname', first_letter='P', prefix_symbol=None)

        >>> sanitize_as_keyword("$everything")
        SanitizedKeyword(keyword='everything', first_letter='e', prefix_symbol='$')

        >>> sanitize_as_keyword("1.2.3")
        SanitizedKeyword(keyword='', first_letter='', prefix_symbol='.')
    """
    if not text or text.isspace():
        return SanitizedKeyword("", "", None)

    first_letter = ""
    prefix_symbol: str | None = None
    parts: list[str] = []

    for c in text:
        category = unicodedata.category(c)

        if category in _UPPER_CATEGORIES:
            parts.append(c.lower())
            if not first_letter:
                first_letter = c
        elif category == "Ll":
            parts.append(c)
            if not first_letter:
                first_letter = c
        elif category == "Nd":
            parts.append(c)
        elif category in _SYMBOL_CATEGORIES:
            if not first_letter and prefix_symbol is None:
                prefix_symbol = c

    if not first_letter:
        # digits and symbols only: not a keyword
        return SanitizedKeyword("", "", prefix_symbol)

    return SanitizedKeyword("".join(parts), first_letter, prefix_symbol)


def strip_html(text: str | None) -> str:
    """Remove HTML tags with a simple non-greedy tag match."""
    if not text or text.isspace():
        return ""
    return HTML_TAG_PATTERN.sub("", text)


def split_words(text: str) -> list[str]:
    """Split text into whitespace-delimited tokens."""
    return text.split()


def classify_word(word: str, reference: ReferenceData) -> ClassifiedKeyword | None:
    """
    Sanitize and classify a single token.

    Precedence (first match wins):
    1. stop word
    2. FHIR element path, unless the keyword is also a known inflection and
       the original first letter was lower-case
    3. FHIR operation name, only when prefixed with the operation marker
    4. inflection with a known lemma: counted as the lemma
    5. plain word

    Returns None for tokens without letters or shorter than
    MIN_KEYWORD_LENGTH.
    """
    sanitized = sanitize_as_keyword(word)
    keyword = sanitized.keyword

    if not sanitized.has_letter or len(keyword) < MIN_KEYWORD_LENGTH:
        return None

    if keyword in reference.stop_words:
        return ClassifiedKeyword(keyword, KeywordType.STOP_WORD)

    lemma = reference.lemmas.get(keyword)
    is_lemma = lemma is not None

    if keyword in reference.fhir_element_paths and (
        not is_lemma or unicodedata.category(sanitized.first_letter) in _UPPER_CATEGORIES
    ):
        return ClassifiedKeyword(keyword, KeywordType.FHIR_ELEMENT_PATH)

    if (
        sanitized.prefix_symbol == OPERATION_MARKER
        and keyword in reference.fhir_operation_names
    ):
        return ClassifiedKeyword(keyword, KeywordType.FHIR_OPERATION_NAME)

    if lemma:
        return ClassifiedKeyword(lemma, KeywordType.WORD, from_lemma=True)

    return ClassifiedKeyword(keyword, KeywordType.WORD)
