"""English inflection helpers used when naming index tables."""

from __future__ import annotations

_IRREGULAR_PLURALS = {
    "person": "people",
    "child": "children",
    "man": "men",
    "woman": "women",
    "mouse": "mice",
    "datum": "data",
    "criterion": "criteria",
    "index": "indices",
    "matrix": "matrices",
    "vertex": "vertices",
    "status": "statuses",
    "address": "addresses",
}

_IRREGULAR_SINGULARS = {plural: single for single, plural in _IRREGULAR_PLURALS.items()}

_UNCOUNTABLE = {"equipment", "information", "series", "species", "news", "data"}


def pluralize(word: str) -> str:
    """Convert a singular English word to its plural form.

    Examples:
        >>> pluralize("email")
        'emails'
        >>> pluralize("category")
        'categories'
        >>> pluralize("address")
        'addresses'
    """
    if not word:
        return word
    lower = word.lower()
    if lower in _UNCOUNTABLE:
        return word

    # Compound attribute names inflect their last segment only
    head, sep, tail = word.rpartition("_")
    if sep and tail:
        return f"{head}_{pluralize(tail)}"

    if lower in _IRREGULAR_PLURALS:
        return _IRREGULAR_PLURALS[lower]
    if lower.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    if lower.endswith("y") and len(lower) > 1 and lower[-2] not in "aeiou":
        return word[:-1] + "ies"
    return word + "s"


def singularize(word: str) -> str:
    """Convert a plural English word to its singular form.

    Examples:
        >>> singularize("users")
        'user'
        >>> singularize("categories")
        'category'
        >>> singularize("boxes")
        'box'
    """
    if not word:
        return word
    lower = word.lower()
    if lower in _UNCOUNTABLE:
        return word

    head, sep, tail = word.rpartition("_")
    if sep and tail:
        return f"{head}_{singularize(tail)}"

    if lower in _IRREGULAR_SINGULARS:
        return _IRREGULAR_SINGULARS[lower]
    if lower in _IRREGULAR_PLURALS:
        return word
    if lower.endswith("ies") and len(lower) > 3:
        return word[:-3] + "y"
    if lower.endswith(("sses", "xes", "zes", "ches", "shes")):
        return word[:-2]
    if lower.endswith("s") and not lower.endswith("ss"):
        return word[:-1]
    return word
