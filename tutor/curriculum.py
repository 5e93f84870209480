from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from tutor.errors import CurriculumError


logger = logging.getLogger("sprachpartner.curriculum")


class Unit(BaseModel):
    """One numbered curriculum block. Unknown keys in the document are kept."""

    model_config = ConfigDict(extra="allow", frozen=True)

    unit: int = Field(..., ge=1)
    title: str = ""
    description: str = ""
    vocabulary: List[str] = Field(default_factory=list)
    phrases: List[str] = Field(default_factory=list)
    grammar: List[str] = Field(default_factory=list)
    communicative_goals: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _default_title(cls, values):
        if isinstance(values, dict) and not values.get("title") and "unit" in values:
            values = {**values, "title": f"Einheit {values['unit']}"}
        return values


class Curriculum:
    def __init__(self, units: Iterable[Unit] = ()) -> None:
        self._units: Dict[int, Unit] = {}
        for unit in units:
            if unit.unit in self._units:
                raise CurriculumError(f"Duplicate unit number {unit.unit}")
            self._units[unit.unit] = unit

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "Curriculum":
        if not isinstance(document, dict):
            raise CurriculumError("Curriculum document must be a JSON object")
        try:
            units = [Unit.model_validate(raw) for raw in document.get("units") or []]
        except ValidationError as exc:
            raise CurriculumError(f"Invalid unit record: {exc}") from exc
        return cls(units)

    @classmethod
    def load(cls, path: str | Path) -> "Curriculum":
        path = Path(path)
        if not path.exists():
            logger.warning("Curriculum file %s not found, serving fallback persona only", path)
            return cls()
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise CurriculumError(f"Cannot parse {path}: {exc}") from exc
        curriculum = cls.from_document(document)
        logger.info("Curriculum data loaded: %s units from %s", len(curriculum), path)
        return curriculum

    def get(self, number: int) -> Optional[Unit]:
        return self._units.get(number)

    def numbers(self) -> List[int]:
        return sorted(self._units)

    def summaries(self) -> List[Dict[str, Any]]:
        return [
            {"unit": unit.unit, "title": unit.title, "description": unit.description}
            for unit in (self._units[n] for n in self.numbers())
        ]

    def __len__(self) -> int:
        return len(self._units)
