from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Literal, TypedDict

CodeType = Literal["reason", "loss"]
CODE_TYPES: tuple[CodeType, ...] = ("reason", "loss")


class CodePayload(TypedDict):
    number: str
    title: str
    definition: str


class DatasetPayload(TypedDict):
    rules: list[str]
    reasonCodes: list[CodePayload]
    lossCodes: list[CodePayload]
    updatedAt: str | None


@dataclass(frozen=True)
class Code:
    number: str
    title: str
    definition: str = ""

    def to_dict(self) -> CodePayload:
        return {"number": self.number, "title": self.title, "definition": self.definition}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Code:
        return cls(
            number=str(data.get("number") or ""),
            title=str(data.get("title") or ""),
            definition=str(data.get("definition") or ""),
        )


@dataclass(frozen=True)
class Dataset:
    """The full shared content: rules plus the two code glossaries.

    Instances are immutable; mutation operators return new datasets so a
    failed operation can never leave a half-updated copy behind.
    """

    rules: tuple[str, ...] = ()
    reason_codes: tuple[Code, ...] = ()
    loss_codes: tuple[Code, ...] = ()
    updated_at: str | None = None

    def codes(self, code_type: CodeType) -> tuple[Code, ...]:
        return self.reason_codes if code_type == "reason" else self.loss_codes

    def with_codes(self, code_type: CodeType, codes: tuple[Code, ...]) -> Dataset:
        if code_type == "reason":
            return replace(self, reason_codes=codes)
        return replace(self, loss_codes=codes)

    def content_dict(self) -> dict[str, Any]:
        return {
            "rules": list(self.rules),
            "reasonCodes": [code.to_dict() for code in self.reason_codes],
            "lossCodes": [code.to_dict() for code in self.loss_codes],
        }

    def to_dict(self) -> DatasetPayload:
        return {
            "rules": list(self.rules),
            "reasonCodes": [code.to_dict() for code in self.reason_codes],
            "lossCodes": [code.to_dict() for code in self.loss_codes],
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, fallback: Dataset | None = None) -> Dataset:
        base = fallback or EMPTY_DATASET
        rules = coerce_rules(data.get("rules"))
        reason = coerce_codes(data.get("reasonCodes"))
        loss = coerce_codes(data.get("lossCodes"))
        updated_at = data.get("updatedAt")
        return cls(
            rules=base.rules if rules is None else rules,
            reason_codes=base.reason_codes if reason is None else reason,
            loss_codes=base.loss_codes if loss is None else loss,
            updated_at=str(updated_at) if updated_at else None,
        )


EMPTY_DATASET = Dataset()


def coerce_rules(value: object) -> tuple[str, ...] | None:
    if not isinstance(value, list):
        return None
    stripped = (item.strip() for item in value if isinstance(item, str))
    return tuple(rule for rule in stripped if rule)


def coerce_codes(value: object) -> tuple[Code, ...] | None:
    if not isinstance(value, list):
        return None
    return tuple(Code.from_dict(item) for item in value if isinstance(item, dict))


@dataclass
class LoginResult:
    token: str
    expires_in_hours: float = 24.0
