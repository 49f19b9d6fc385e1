"""Catalogue of filterable dimensions on the case-log reporting table.

This is the only place that maps a dimension key to a physical column. The
``person`` entry is a pseudo-dimension: its column is the ``__SUBMITTER__``
sentinel and SQL uses :data:`PERSON_EXPR` (submitterName with a fallback to
submitter) instead of a plain column.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

PERSON_KEY = "person"
PERSON_SENTINEL = "__SUBMITTER__"
PERSON_DISPLAY_EXPR = "TRIM(COALESCE(NULLIF(submitterName,''), submitter))"
PERSON_EXPR = f"LOWER({PERSON_DISPLAY_EXPR})"
PERSON_COLUMNS = ("submitterName", "submitter")


@dataclass(frozen=True)
class Dimension:
    key: str
    column: str
    label_es: str
    label_en: str
    lookup_column: str
    synonyms_es: Tuple[str, ...] = field(default_factory=tuple)
    synonyms_en: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def pick_type(self) -> str:
        return f"{self.key}_pick"

    @property
    def is_person(self) -> bool:
        return self.column == PERSON_SENTINEL

    def label(self, lang: str = "en") -> str:
        return self.label_es if (lang or "").startswith("es") else self.label_en

    def match_expr(self) -> str:
        """Case-insensitive SQL expression used for LIKE filters on this dimension."""

        if self.is_person:
            return PERSON_EXPR
        return f"LOWER(TRIM({self.column}))"

    def display_expr(self) -> str:
        if self.is_person:
            return PERSON_DISPLAY_EXPR
        return f"TRIM({self.lookup_column})"

    def referenced_columns(self) -> Tuple[str, ...]:
        if self.is_person:
            return PERSON_COLUMNS
        return (self.column,)


def _dim(key, column, label_es, label_en, syn_es, syn_en, lookup=None) -> Dimension:
    return Dimension(
        key=key,
        column=column,
        label_es=label_es,
        label_en=label_en,
        lookup_column=lookup or column,
        synonyms_es=tuple(syn_es),
        synonyms_en=tuple(syn_en),
    )


_DIMENSIONS: Tuple[Dimension, ...] = (
    _dim(
        PERSON_KEY, PERSON_SENTINEL, "representante", "rep",
        ["rep", "representante", "submitter", "agente", "persona", "entered by", "creado por"],
        ["rep", "submitter", "agent", "person", "entered by", "created by"],
        lookup="submitterName",
    ),
    _dim("office", "OfficeName", "oficina", "office", ["oficina", "sucursal", "office"], ["office", "branch"]),
    _dim("team", "TeamName", "equipo", "team", ["equipo", "team"], ["team"]),
    _dim("pod", "PODEName", "pod", "pod", ["pod", "pode"], ["pod", "pode"]),
    _dim("region", "RegionName", "región", "region", ["region", "región"], ["region"]),
    _dim("director", "DirectorName", "director", "director", ["director", "dirección", "dir"], ["director"]),
    _dim("attorney", "attorney", "abogado", "attorney", ["abogado", "attorney", "lawyer"], ["attorney", "lawyer"]),
    _dim(
        "intake", "intakeSpecialist", "intake", "intake",
        ["intake", "especialista de intake", "locked down", "intake specialist"],
        ["intake", "intake specialist", "locked down"],
    ),
    _dim(
        "txLocation", "txLocation", "ubicación", "location",
        ["ubicacion", "ubicación", "location", "txlocation"], ["location", "txlocation"],
    ),
    _dim("origin", "Origin", "origen", "origin", ["origen", "origin", "source", "fuente"], ["origin", "source"]),
    _dim(
        "accidentState", "accidentState", "estado del accidente", "accident state",
        ["estado accidente", "accident state", "accidentstate"], ["accident state", "accidentstate"],
    ),
    _dim("status", "Status", "status", "status", ["status", "estado", "estatus"], ["status", "state"]),
    _dim(
        "legalStatus", "LegalStatus", "estado legal", "legal status",
        ["legalstatus", "legal status", "estado legal"], ["legalstatus", "legal status"],
    ),
    _dim(
        "clinicalStatus", "ClinicalStatus", "estado clínico", "clinical status",
        ["clinicalstatus", "clinical status", "estado clínico", "estado clinico"],
        ["clinicalstatus", "clinical status"],
    ),
    _dim(
        "directorEmail", "DirectorEmail", "email director", "director email",
        ["email director", "correo director", "directoremail"], ["director email", "directoremail"],
    ),
    _dim(
        "regionEmail", "RegionEmail", "email región", "region email",
        ["email region", "correo region", "correo región", "regionemail"], ["region email", "regionemail"],
    ),
    _dim(
        "officeEmail", "OfficeEmail", "email oficina", "office email",
        ["email oficina", "correo oficina", "officeemail"], ["office email", "officeemail"],
    ),
    _dim(
        "podEmail", "PODEmail", "email pod", "pod email",
        ["email pod", "correo pod", "podemail", "podeemail"], ["pod email", "podemail", "podeemail"],
    ),
    _dim(
        "teamEmail", "TeamEmail", "email equipo", "team email",
        ["email equipo", "correo equipo", "teamemail"], ["team email", "teamemail"],
    ),
)

_BY_KEY: Dict[str, Dimension] = {d.key: d for d in _DIMENSIONS}


def get_dimension(key: str) -> Optional[Dimension]:
    return _BY_KEY.get(str(key or ""))


def list_dimensions() -> List[Dimension]:
    return list(_DIMENSIONS)


def key_from_column(column: str) -> Optional[str]:
    c = str(column or "").strip().lower()
    if not c:
        return None
    for dim in _DIMENSIONS:
        if dim.column.lower() == c:
            return dim.key
    return None


__all__ = [
    "Dimension",
    "PERSON_COLUMNS",
    "PERSON_DISPLAY_EXPR",
    "PERSON_EXPR",
    "PERSON_KEY",
    "PERSON_SENTINEL",
    "get_dimension",
    "key_from_column",
    "list_dimensions",
]
