"""
Kundali Derivation API — FastAPI Backend
========================================
Endpoints:
  POST /api/houses   — Whole-sign houses, lordship, provider mismatches
  POST /api/yogas    — Yoga / dosha detection (+ divisional support)
  POST /api/dasha    — Vimshottari or Yogini dasha tree
  POST /api/kundali  — Full derivation (houses, yogas, doshas, both dashas)
  GET  /api/health   — Health check
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Union

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from kundali_core import __version__, derive_houses, derive_kundali
from kundali_core.config import get_settings
from kundali_core.core.dasha import active_stack, compute_dasha
from kundali_core.core.errors import KundaliError
from kundali_core.core.profile import BirthProfile
from kundali_core.core.signs import self_check
from kundali_core.core.yogas import (
    detect_all, detect_divisional_support, detect_divisional_weakness,
)

settings = get_settings()
logger = logging.getLogger("kundali_core.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    self_check()
    logger.info("%s %s ready", settings.app_name, __version__)
    yield


app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="Whole-sign houses, yogas/doshas and Vimshottari/Yogini dashas "
                "derived from provider positions",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request Models ─────────────────────────────────────────────

class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PlanetRow(_Wire):
    planet:        str
    sign:          Optional[Union[int, str]] = None
    longitude:     Optional[float] = None
    house:         Optional[int]   = None
    is_retrograde: bool            = Field(False, alias="isRetrograde")


class ChartIn(_Wire):
    ascendant: Union[int, str]
    planets:   List[PlanetRow]


class QueryRange(_Wire):
    start: str = Field(..., alias="from")
    end:   str = Field(..., alias="to")

    def as_dict(self) -> dict:
        return {"from": self.start, "to": self.end}


class HousesRequest(ChartIn):
    locale: Optional[str] = Field(None, pattern="^(en|ne)$")


class YogasRequest(ChartIn):
    dignities:         Optional[Dict[str, str]]    = None
    aspects:           Optional[List[Dict[str, Any]]] = None
    divisional_charts: Optional[Dict[str, ChartIn]] = Field(None, alias="divisionalCharts")
    divisional_dignities: Optional[Dict[str, Dict[str, str]]] = Field(None, alias="divisionalDignities")
    dasha_context:     Optional[Dict[str, str]]    = Field(None, alias="dashaContext")


class DashaRequest(_Wire):
    system:          str   = Field("vimshottari", pattern="^(vimshottari|yogini)$")
    moon_longitude:  float = Field(..., alias="moonLongitude")
    birth_timestamp: str   = Field(..., alias="birthTimestamp")
    max_depth:       Optional[int] = Field(None, ge=1, le=5, alias="maxDepth")
    query_range:     Optional[QueryRange] = Field(None, alias="queryRange")
    as_of:           Optional[str] = Field(None, alias="asOf")
    config:          Optional[Dict[str, Any]] = None


class KundaliRequest(ChartIn):
    profile:             BirthProfile
    config:              Optional[Dict[str, Any]] = None
    dignities:           Optional[Dict[str, str]] = None
    aspects:             Optional[List[Dict[str, Any]]] = None
    divisional_charts:   Optional[Dict[str, ChartIn]] = Field(None, alias="divisionalCharts")
    ascendant_longitude: Optional[float] = Field(None, alias="ascendantLongitude")
    divisions:           List[str] = ["D9", "D10"]
    max_depth:           Optional[int] = Field(None, ge=1, le=5, alias="maxDepth")
    query_range:         Optional[QueryRange] = Field(None, alias="queryRange")
    as_of:               Optional[str] = Field(None, alias="asOf")
    events:              List[str] = Field([], alias="userEvents")
    divisional_dignities: Optional[Dict[str, Dict[str, str]]] = Field(None, alias="divisionalDignities")
    locale:              Optional[str] = Field(None, pattern="^(en|ne)$")


# ── Utilities ──────────────────────────────────────────────────

def _rows(planets: List[PlanetRow]) -> List[dict]:
    return [p.model_dump(exclude_none=True) for p in planets]


def _charts(charts: Optional[Dict[str, ChartIn]]) -> Optional[dict]:
    if not charts:
        return None
    return {name: {"ascendant": c.ascendant, "planets": _rows(c.planets)}
            for name, c in charts.items()}


# ── Endpoints ──────────────────────────────────────────────────

@app.get("/api/health")
def health():
    return {
        "status": "ok",
        "service": settings.app_name,
        "version": __version__,
        "endpoints": [
            "POST /api/houses",
            "POST /api/yogas",
            "POST /api/dasha",
            "POST /api/kundali",
        ],
    }


@app.post("/api/houses")
def houses_endpoint(data: HousesRequest):
    try:
        result = derive_houses(data.ascendant, _rows(data.planets),
                               data.locale or settings.default_locale)
        return {"success": True, "chart": result}
    except KundaliError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/yogas")
def yogas_endpoint(data: YogasRequest):
    try:
        yogas, doshas = detect_all(data.ascendant, _rows(data.planets),
                                   dignities=data.dignities, aspects=data.aspects,
                                   dasha_context=data.dasha_context)
        charts = _charts(data.divisional_charts) or {}
        support = detect_divisional_support(yogas, charts, data.divisional_dignities)
        weakened = detect_divisional_weakness(yogas, charts, data.divisional_dignities)
        return {
            "success": True,
            "yogas": [y.as_dict() for y in yogas],
            "doshas": [d.as_dict() for d in doshas],
            "divisional_support": [s.as_dict() for s in support],
            "divisional_weakened": [w.as_dict() for w in weakened],
        }
    except KundaliError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/dasha")
def dasha_endpoint(data: DashaRequest):
    try:
        timeline = compute_dasha(
            data.system, data.moon_longitude, data.birth_timestamp,
            max_depth=data.max_depth or settings.default_dasha_depth,
            query_range=data.query_range.as_dict() if data.query_range else None,
            config=data.config,
            extend_to=[data.as_of] if data.as_of else (),
        )
        result = {"success": True, "dasha": timeline.as_dict()}
        if data.as_of:
            result["active"] = active_stack(timeline.periods, data.as_of)
        return result
    except KundaliError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/kundali")
def kundali_endpoint(data: KundaliRequest):
    try:
        chart = derive_kundali(
            data.profile, data.ascendant, _rows(data.planets),
            config=data.config,
            dignities=data.dignities,
            aspects=data.aspects,
            divisional_charts=_charts(data.divisional_charts),
            ascendant_longitude=data.ascendant_longitude,
            divisions=data.divisions,
            max_depth=data.max_depth or settings.default_dasha_depth,
            query_range=data.query_range.as_dict() if data.query_range else None,
            as_of=data.as_of,
            events=data.events,
            divisional_dignities=data.divisional_dignities,
            locale=data.locale or settings.default_locale,
        )
        return {"success": True, "chart": chart}
    except KundaliError as e:
        raise HTTPException(status_code=400, detail=str(e))
