"""
Name Normalizer: canonical form of person and organization names

Handles normalization of Venezuelan official and company names with:
- Accent removal (Nicolás → nicolas, Rondón → rondon, ñ → n)
- Honorific and title removal (Sr., Dra., Gral., Lic., ...)
- Punctuation and whitespace normalization
- Nickname variants for fuzzy matching (Nico → nicolas)

The output is lower-case ASCII tokens separated by single spaces, so
normalize(normalize(x)) == normalize(x).
"""

import re
from typing import NamedTuple
from unidecode import unidecode

from .errors import InvalidInputError


class NormalizedName(NamedTuple):
    """Result of name normalization."""
    original: str
    normalized: str
    tokens: list[str]
    removed_honorifics: list[str]


class NameNormalizer:
    """
    Spanish/English person and organization name normalizer.

    Example:
        >>> normalizer = NameNormalizer()
        >>> normalizer.normalize("Sr. Nicolás  Maduro-Moros")
        'nicolas maduro moros'
    """

    # Honorifics are matched as whole tokens after accent and punctuation removal
    HONORIFICS = {
        'es': {
            'sr', 'sra', 'srta', 'senor', 'senora', 'senorita',
            'don', 'dona', 'dr', 'dra', 'doctor', 'doctora',
            'lic', 'licdo', 'licda', 'licenciado', 'licenciada',
            'ing', 'arq', 'abg', 'abog', 'prof', 'profa', 'mtro', 'mtra',
            'gral', 'cnel', 'tte', 'cap', 'mayor', 'excmo', 'excma',
        },
        'en': {
            'mr', 'mrs', 'ms', 'miss', 'mx', 'dr', 'prof', 'sir',
            'hon', 'gen', 'col', 'lt', 'capt',
        },
    }

    # Spanish nicknames → formal given name
    NICKNAMES = {
        'nico': 'nicolas',
        'pepe': 'jose',
        'chucho': 'jesus',
        'chuy': 'jesus',
        'pancho': 'francisco',
        'paco': 'francisco',
        'alex': 'alejandro',
        'tony': 'antonio',
        'toño': 'antonio',
        'charlie': 'carlos',
        'lucho': 'luis',
        'rafa': 'rafael',
        'mike': 'miguel',
        'lupe': 'guadalupe',
        'nacho': 'ignacio',
        'quique': 'enrique',
        'memo': 'guillermo',
    }

    def __init__(self):
        self._punctuation_pattern = re.compile(r'[^a-z0-9\s]')
        self._all_honorifics = set().union(*self.HONORIFICS.values())
        self._nicknames = {unidecode(k): v for k, v in self.NICKNAMES.items()}

    def honorifics_for(self, language: str | None) -> set[str]:
        """Honorifics for a language code; unknown languages get every list."""
        lang = (language or '').lower()[:2]
        return self.HONORIFICS.get(lang, self._all_honorifics)

    def analyze(self, name: str, language: str = 'es') -> NormalizedName:
        """
        Normalize a name and report what was stripped.

        Raises:
            InvalidInputError: empty/whitespace input, or nothing left after cleaning
        """
        if not isinstance(name, str) or not name.strip():
            raise InvalidInputError("Name must be a non-empty string", {"name": name})

        original = name.strip()

        # Step 1: Transliterate to ASCII and lower-case
        text = unidecode(original).lower()

        # Step 2: Punctuation becomes whitespace
        text = self._punctuation_pattern.sub(' ', text)

        # Step 3: Drop honorific tokens
        honorifics = self.honorifics_for(language)
        tokens = []
        removed = []
        for token in text.split():
            if token in honorifics:
                removed.append(token)
            else:
                tokens.append(token)

        if not tokens:
            raise InvalidInputError(
                "Name has no content after normalization",
                {"name": original},
            )

        return NormalizedName(
            original=original,
            normalized=' '.join(tokens),
            tokens=tokens,
            removed_honorifics=removed,
        )

    def normalize(self, name: str, language: str = 'es') -> str:
        """Return the canonical comparison form of a name."""
        return self.analyze(name, language).normalized

    def nickname_variants(self, normalized: str) -> list[str]:
        """
        Expand nicknames in an already normalized name.

        "nico maduro" → ["nicolas maduro"]. The input itself is not included.
        """
        tokens = normalized.split()
        variants = []
        for i, token in enumerate(tokens):
            formal = self._nicknames.get(token)
            if formal:
                variant = tokens[:i] + [formal] + tokens[i + 1:]
                variants.append(' '.join(variant))
        if len(variants) > 1:
            variants.append(' '.join(self._nicknames.get(t, t) for t in tokens))
        # Preserve order, drop duplicates
        return list(dict.fromkeys(variants))


# Module-level convenience functions
_default = NameNormalizer()


def normalize_name(name: str, language: str = 'es') -> str:
    """Convenience function for one-off normalization."""
    return _default.normalize(name, language)
