"""Drill content library: curated templates plus the legacy fallback list."""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import BaseModel, ValidationError

from periodizer.config import DATA_DIR
from periodizer.exceptions import DrillLibraryError
from periodizer.models.schemas import DrillTemplate, Intensity, PhaseType

logger = logging.getLogger(__name__)

# Below this many curated templates for a phase type the legacy pool is mixed in.
MIN_CURATED_CANDIDATES = 4
LEGACY_QUALITY_WEIGHT = 0.4
LEGACY_SOURCE_NAME = "legacy"

# Name heuristics deciding which legacy drills suit a phase type.
_LEGACY_NAME_PATTERNS: dict[PhaseType, re.Pattern[str]] = {
    PhaseType.WARM: re.compile(r"warm|rondo", re.IGNORECASE),
    PhaseType.COOL: re.compile(r"stretch|cool", re.IGNORECASE),
    PhaseType.TECHNICAL: re.compile(r"pass|possession|shoot|cross", re.IGNORECASE),
    PhaseType.TACTICAL: re.compile(r"press|transition|shape", re.IGNORECASE),
    PhaseType.TRANSITION: re.compile(r"press|transition|shape", re.IGNORECASE),
}


class LegacyDrill(BaseModel):
    """Entry of the simple pre-library drill list."""

    name: str
    duration: int = 10
    load: Intensity | None = None
    instructions: str = ""
    goals: str = ""
    equipment: str = ""
    visual: str = ""


def _split(text: str, pattern: str = r"[;,]") -> list[str]:
    return [part.strip() for part in re.split(pattern, text or "") if part.strip()]


def _slug(text: str) -> str:
    return re.sub(r"\s+", "_", text.strip()).lower()


def adapt_legacy_drill(
    drill: LegacyDrill,
    phase_type: PhaseType,
    index: int,
    target_load: Intensity,
) -> DrillTemplate:
    """Wrap a legacy drill as a low-trust template for the given phase type."""

    duration_max = max(1, drill.duration)
    if duration_max - 3 > 0:
        duration_min = duration_max - 3
    else:
        duration_min = min(duration_max, max(5, round(duration_max * 0.6)))
    return DrillTemplate(
        id=f"legacy_{phase_type.value}_{index}_{_slug(drill.name)}",
        name=drill.name,
        phase=phase_type,
        workload=drill.load or target_load,
        category=phase_type.value,
        objective_primary=drill.instructions or drill.name,
        objectives_secondary=_split(drill.goals),
        duration_min=duration_min,
        duration_max=duration_max,
        equipment=_split(drill.equipment, r","),
        source_name=LEGACY_SOURCE_NAME,
        quality_weight=LEGACY_QUALITY_WEIGHT,
    )


def validate_template(raw: dict[str, Any]) -> DrillTemplate:
    """Validate one raw library record.

    Raises:
        DrillLibraryError: The record is missing required fields, has an
            inverted duration range or an out-of-range quality weight.
    """
    try:
        return DrillTemplate.model_validate(raw)
    except ValidationError as exc:
        ident = raw.get("id") if isinstance(raw, dict) else None
        raise DrillLibraryError(f"Invalid drill template {ident or '<no id>'}: {exc}") from exc


class DrillLibrary:
    """Immutable collection of drill templates indexed by phase type."""

    def __init__(
        self,
        templates: Iterable[DrillTemplate],
        legacy: Iterable[LegacyDrill] = (),
    ) -> None:
        self._templates: list[DrillTemplate] = []
        self._by_phase: dict[PhaseType, list[DrillTemplate]] = {p: [] for p in PhaseType}
        seen: set[str] = set()
        for template in templates:
            if template.id in seen:
                raise DrillLibraryError(f"Duplicate drill id {template.id!r}")
            seen.add(template.id)
            self._templates.append(template)
            self._by_phase[template.phase].append(template)
        self._legacy = list(legacy)

    @classmethod
    def load(
        cls,
        drills_path: str | Path | None = None,
        legacy_path: str | Path | None = None,
    ) -> "DrillLibrary":
        drills_path = Path(drills_path) if drills_path else DATA_DIR / "drills.yaml"
        legacy_path = Path(legacy_path) if legacy_path else DATA_DIR / "legacy_drills.yaml"

        with drills_path.open("r", encoding="utf-8") as fh:
            raw_drills = (yaml.safe_load(fh) or {}).get("drills", [])
        templates = [validate_template(item) for item in raw_drills]

        legacy: list[LegacyDrill] = []
        if legacy_path.exists():
            with legacy_path.open("r", encoding="utf-8") as fh:
                raw_legacy = (yaml.safe_load(fh) or {}).get("drills", [])
            legacy = [LegacyDrill.model_validate(item) for item in raw_legacy]

        logger.info(
            "Loaded drill library: %d templates, %d legacy drills from %s",
            len(templates),
            len(legacy),
            drills_path,
        )
        return cls(templates, legacy)

    def __len__(self) -> int:
        return len(self._templates)

    @property
    def templates(self) -> list[DrillTemplate]:
        return list(self._templates)

    def for_phase(self, phase_type: PhaseType) -> list[DrillTemplate]:
        return list(self._by_phase.get(phase_type, []))

    def legacy_for_phase(self, phase_type: PhaseType, target_load: Intensity) -> list[DrillTemplate]:
        pattern = _LEGACY_NAME_PATTERNS.get(phase_type)
        matching = [d for d in self._legacy if pattern is None or pattern.search(d.name)]
        return [
            adapt_legacy_drill(drill, phase_type, index, target_load)
            for index, drill in enumerate(matching)
        ]

    def candidates(self, phase_type: PhaseType, target_load: Intensity) -> list[DrillTemplate]:
        """Templates for a phase type, topped up from the legacy list when scarce."""

        curated = self.for_phase(phase_type)
        if len(curated) >= MIN_CURATED_CANDIDATES:
            return curated
        legacy = self.legacy_for_phase(phase_type, target_load)
        if legacy:
            logger.debug(
                "Phase %s has %d curated drills; adding %d legacy drills",
                phase_type.value,
                len(curated),
                len(legacy),
            )
        return curated + legacy
