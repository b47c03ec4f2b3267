"""Pure transformations of a :class:`~shrinkrules.models.Dataset`.

Nothing here performs I/O. Each operator returns a new dataset or raises a
:class:`~shrinkrules.errors.ValidationError` subclass, leaving the input
untouched either way.
"""

from __future__ import annotations

import re
from dataclasses import replace

from .errors import NothingToAdd, NothingToSave, ValidationError
from .models import CODE_TYPES, Code, CodeType, Dataset

# "1) x", "2.3 - x", "4] x" and plain "1. x"
_NUMBER_PREFIX_RE = re.compile(r"^(?:[\d.]+\s*[-•*)\]]|\d+\.(?=\s))\s*")
_LETTER_PREFIX_RE = re.compile(r"^[a-z]\)\s*", re.IGNORECASE)
_BULLET_PREFIX_RE = re.compile(r"^[-•*]\s*")
_CODE_HEADER_RE = re.compile(r"^(\d+)\.\s*(.+)")


def _rule_key(rule: str) -> str:
    return str(rule).strip().lower()


def parse_rules(text: str) -> list[str]:
    parsed: list[str] = []
    for line in (text or "").splitlines():
        trimmed = line.strip()
        if not trimmed:
            continue
        cleaned = _NUMBER_PREFIX_RE.sub("", trimmed, count=1)
        cleaned = _LETTER_PREFIX_RE.sub("", cleaned, count=1)
        cleaned = _BULLET_PREFIX_RE.sub("", cleaned, count=1).strip()
        if cleaned:
            parsed.append(cleaned)
    return parsed


def serialize_rules(rules: tuple[str, ...] | list[str]) -> str:
    return "\n".join(f"{idx}. {rule}" for idx, rule in enumerate(rules, start=1))


def parse_codes(text: str) -> list[Code]:
    codes: list[Code] = []
    number: str | None = None
    title = ""
    definition: list[str] = []
    for line in (text or "").splitlines():
        trimmed = line.strip()
        if not trimmed:
            continue
        match = _CODE_HEADER_RE.match(trimmed)
        if match:
            if number is not None:
                codes.append(Code(number=number, title=title, definition=" ".join(definition)))
            number, title, definition = match.group(1), match.group(2).strip(), []
        elif number is not None:
            definition.append(trimmed)
    if number is not None:
        codes.append(Code(number=number, title=title, definition=" ".join(definition)))
    return codes


def _check_index(index: int, size: int, *, what: str) -> int:
    if isinstance(index, bool) or not isinstance(index, int):
        raise ValidationError(f"{what} index must be an integer")
    if index < 0 or index >= size:
        raise ValidationError(f"{what} #{index + 1} does not exist")
    return index


def _check_code_type(code_type: str) -> CodeType:
    if code_type not in CODE_TYPES:
        raise ValidationError(f"unknown code type: {code_type!r}")
    return code_type  # type: ignore[return-value]


def add_rules(current: Dataset, raw_text: str) -> tuple[Dataset, int]:
    candidates = parse_rules(raw_text)
    if not candidates:
        raise NothingToAdd("Nothing to add.")
    seen = {_rule_key(rule) for rule in current.rules}
    to_add: list[str] = []
    for rule in candidates:
        key = _rule_key(rule)
        if key in seen:
            continue
        seen.add(key)
        to_add.append(rule)
    if not to_add:
        raise NothingToAdd("All provided rules already exist.")
    return replace(current, rules=(*current.rules, *to_add)), len(to_add)


def replace_all_rules(current: Dataset, raw_text: str, *, confirm: bool = False) -> Dataset:
    if not confirm:
        raise ValidationError("Replacing all rules requires confirmation.")
    return replace(current, rules=tuple(parse_rules(raw_text)))


def edit_rule(current: Dataset, index: int, new_text: str) -> Dataset:
    text = (new_text or "").strip()
    if not text:
        raise ValidationError("Rule text cannot be empty.")
    _check_index(index, len(current.rules), what="rule")
    rules = list(current.rules)
    rules[index] = text
    return replace(current, rules=tuple(rules))


def delete_rule(current: Dataset, index: int) -> Dataset:
    _check_index(index, len(current.rules), what="rule")
    rules = current.rules[:index] + current.rules[index + 1 :]
    return replace(current, rules=rules)


def add_codes(current: Dataset, code_type: str, raw_text: str) -> tuple[Dataset, int]:
    resolved = _check_code_type(code_type)
    new_codes = parse_codes(raw_text)
    if not new_codes:
        raise NothingToSave("Nothing to save.")
    updated = current.with_codes(resolved, (*current.codes(resolved), *new_codes))
    return updated, len(new_codes)


def delete_code(current: Dataset, code_type: str, index: int) -> Dataset:
    resolved = _check_code_type(code_type)
    codes = current.codes(resolved)
    _check_index(index, len(codes), what="code")
    return current.with_codes(resolved, codes[:index] + codes[index + 1 :])


def filter_rules(current: Dataset, query: str) -> list[tuple[int, str]]:
    needle = (query or "").strip().lower()
    indexed = list(enumerate(current.rules))
    if not needle:
        return indexed
    return [(idx, rule) for idx, rule in indexed if needle in str(rule).lower()]
