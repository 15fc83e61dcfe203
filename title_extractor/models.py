"""Structured title-search records produced by the AI structuring stage"""
from typing import Any, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


Confidence = Literal["high", "medium", "low"]


def _as_text(value: Any) -> str:
    """Coerce a model-supplied field value to a string ('' for missing)."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple)):
        return ", ".join(_as_text(v) for v in value if v is not None)
    return str(value)


class Record(BaseModel):
    """Base for all record categories: every field is a string, never null"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _as_text(value)


class Deed(Record):
    grantor: str = ""
    grantee: str = ""
    consideration: str = ""
    note_date: str = ""
    file_number: str = ""
    recording_date: str = ""
    book_page: str = ""


class DeedOfTrust(Record):
    grantor: str = ""
    amount: str = ""
    lender: str = ""
    status: str = "Open"
    trustee: str = ""
    maturity_date: str = ""
    note_date: str = ""
    file_number: str = ""
    recording_date: str = ""
    book_pages: str = ""

    @field_validator("status", mode="after")
    @classmethod
    def _default_open(cls, value: str) -> str:
        return value or "Open"


class Judgment(Record):
    plaintiff: str = ""
    defendant: str = ""
    amount: str = ""
    judgment_date: str = ""
    file_number: str = ""
    recording_date: str = ""
    book_page: str = ""


class Lien(Record):
    lien_type: str = Field(default="", alias="type")
    creditor: str = ""
    amount: str = ""
    status: str = "Open"
    file_number: str = ""
    recording_date: str = ""

    @field_validator("status", mode="after")
    @classmethod
    def _default_open(cls, value: str) -> str:
        return value or "Open"


class PropertyInfo(Record):
    address: str = ""
    parcel_number: str = ""
    legal_description: str = ""


class ExtractedDocument(BaseModel):
    """Complete structured result for one document"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    deeds: List[Deed] = Field(default_factory=list)
    deeds_of_trust: List[DeedOfTrust] = Field(default_factory=list)
    judgments: List[Judgment] = Field(default_factory=list)
    liens: List[Lien] = Field(default_factory=list)
    names_searched: List[str] = Field(default_factory=list)
    property_info: PropertyInfo = Field(default_factory=PropertyInfo)
    confidence: Confidence = "medium"

    @field_validator("deeds", "deeds_of_trust", "judgments", "liens", mode="before")
    @classmethod
    def _null_to_empty(cls, value: Any) -> Any:
        # Models sometimes emit null or a single object instead of an array
        if value is None:
            return []
        if isinstance(value, dict):
            return [value]
        return value

    @field_validator("deeds", "deeds_of_trust", "judgments", "liens", mode="before")
    @classmethod
    def _drop_non_records(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [item for item in value if isinstance(item, dict)]
        return value

    @field_validator("property_info", mode="before")
    @classmethod
    def _null_property(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}

    @field_validator("names_searched", mode="before")
    @classmethod
    def _coerce_names(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            value = [value]
        return [text for text in (_as_text(item) for item in value) if text]

    @field_validator("names_searched", mode="after")
    @classmethod
    def _dedupe_names(cls, value: List[str]) -> List[str]:
        seen = set()
        names = []
        for name in value:
            name = " ".join(name.split())
            if name and name.lower() not in seen:
                seen.add(name.lower())
                names.append(name)
        return names

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, value: Any) -> str:
        text = _as_text(value).lower()
        return text if text in ("high", "medium", "low") else "medium"

    def record_counts(self) -> dict:
        return {
            "deeds": len(self.deeds),
            "deedsOfTrust": len(self.deeds_of_trust),
            "judgments": len(self.judgments),
            "liens": len(self.liens),
        }

    def to_dict(self) -> dict:
        """Serialize with the camelCase keys consumers expect"""
        return self.model_dump(by_alias=True)
