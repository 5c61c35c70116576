from __future__ import annotations

import logging
import re
import unicodedata
from typing import Iterable, Mapping

log = logging.getLogger("suiviventes.imports")

# Declaration order matters: a header claimed by an earlier field is not
# offered to later ones.
FIELD_VARIANTS: dict[str, tuple[str, ...]] = {
    "register": ("caisse", "register", "cash_register", "till", "pos"),
    "product": ("produit", "product", "item", "article", "nom", "name"),
    "type": ("types", "type", "category", "categorie", "catégorie"),
    "quantity": ("quantité", "quantite", "quantity", "qty", "qte", "nb"),
    "amount": ("montant", "amount", "total", "prix", "price", "value", "valeur"),
    "seller": ("vendeur", "seller", "salesperson", "employee", "employe", "employé", "staff", "user", "utilisateur"),
    "date": ("date", "datetime", "timestamp", "time"),
}

# Placeholder names produced by spreadsheet readers for blank header cells.
PLACEHOLDER_PREFIXES = ("Unnamed:", "__EMPTY")

_NOISE = re.compile(r"[_\s-]")


def clean_header(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", str(text).strip().lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NOISE.sub("", stripped)


_CLEAN_VARIANTS: dict[str, tuple[str, ...]] = {
    field: tuple(clean_header(v) for v in variants) for field, variants in FIELD_VARIANTS.items()
}


def _matches(candidate: str, variant: str) -> bool:
    return candidate == variant or variant in candidate or candidate in variant


def normalize_headers(headers: Iterable[str]) -> dict[str, str]:
    """Map canonical field names to the original spreadsheet headers.

    Matching is by substring containment in both directions on cleaned
    text (lowercase, accents and ``_ -``/whitespace removed). Each header
    goes to the first declared field it matches that is still free.
    """
    mapping: dict[str, str] = {}
    for header in headers:
        raw = str(header)
        if raw.startswith(PLACEHOLDER_PREFIXES):
            log.debug("header_skipped header=%r reason=placeholder", raw)
            continue
        candidate = clean_header(raw)
        if not candidate:
            continue
        for field, variants in _CLEAN_VARIANTS.items():
            if field in mapping:
                continue
            if any(_matches(candidate, v) for v in variants):
                mapping[field] = raw
                break
    log.info("headers_mapped mapping=%s", mapping)
    return mapping


def map_row(row: Mapping[str, object], mapping: Mapping[str, str]) -> dict[str, object]:
    mapped: dict[str, object] = {}
    for field, header in mapping.items():
        if header not in row:
            continue
        value = row[header]
        if value is None or value == "":
            continue
        mapped[field] = value
    return mapped
