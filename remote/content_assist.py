# remote/content_assist.py
"""
Boundary to the generative-AI service used for content tasks: photo analysis,
ad copy, pricing insight and slow-mover strategy. The sync core only consumes
the request/response shapes defined here.
"""
import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests
from tenacity import RetryError, retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from partsync.logger import get_logger
from partsync.models import Part, PartCategory, PartStatus, SyncError, VehicleInfo
from partsync.normalize import generate_id, normalize_category, parse_price, parse_year

logger = get_logger(__name__)

API_BASE = os.getenv(
    "CONTENT_ASSIST_API_BASE", "https://generativelanguage.googleapis.com/v1beta"
)
DEFAULT_MODEL = os.getenv("CONTENT_ASSIST_MODEL", "gemini-2.5-flash")

INSIGHT_FALLBACK = "Pricing insight is not available right now."
STRATEGY_FALLBACK = "Strategy is not available right now."
MEXICO_HINTS = ("mexico", "méxico", "mx", "torreon", "torreón", "mty", "monterrey", "coahuila")


class ContentAssistError(SyncError):
    """The content service cannot be used (missing key, bad request)."""


@dataclass
class BusinessContext:
    name: str
    location: str = ""


@dataclass
class RegionalInfo:
    currency: str
    country: str
    market: str
    is_mexico: bool


def regional_info(location: str) -> RegionalInfo:
    loc = (location or "").lower()
    is_mexico = any(h in loc for h in MEXICO_HINTS)
    if is_mexico:
        return RegionalInfo(currency="MXN", country="Mexico", market="Mexican market", is_mexico=True)
    return RegionalInfo(currency="USD", country="USA", market="Texas (USA) market", is_mexico=False)


@dataclass
class VehicleDescriptor:
    year: int = 0
    make: str = ""
    model: str = ""
    trim: str = ""
    vin: str = ""


@dataclass
class DetectedPart:
    name: str
    category: str = PartCategory.OTHER.value
    condition: str = ""
    suggested_price: float = 0.0
    min_price: float = 0.0


@dataclass
class AnalysisGroup:
    vehicle: VehicleDescriptor
    parts: List[DetectedPart] = field(default_factory=list)


@dataclass
class AnalysisResult:
    groups: List[AnalysisGroup] = field(default_factory=list)

    @property
    def part_count(self) -> int:
        return sum(len(g.parts) for g in self.groups)


def parse_analysis(data: Any) -> AnalysisResult:
    """Build an AnalysisResult from the decoded JSON answer, skipping junk."""
    if not isinstance(data, dict) or not isinstance(data.get("groups"), list):
        return AnalysisResult()

    groups: List[AnalysisGroup] = []
    for g in data["groups"]:
        if not isinstance(g, dict):
            continue
        v = g.get("vehicle") if isinstance(g.get("vehicle"), dict) else {}
        vehicle = VehicleDescriptor(
            year=parse_year(v.get("year")),
            make=str(v.get("make") or "").strip(),
            model=str(v.get("model") or "").strip(),
            trim=str(v.get("trim") or "").strip(),
            vin=str(v.get("vin") or "").strip(),
        )
        parts = []
        for p in g.get("parts") or []:
            if not isinstance(p, dict) or not p.get("name"):
                continue
            parts.append(
                DetectedPart(
                    name=str(p["name"]).strip(),
                    category=str(p.get("category") or PartCategory.OTHER.value),
                    condition=str(p.get("condition") or "").strip(),
                    suggested_price=parse_price(p.get("suggestedPrice")),
                    min_price=parse_price(p.get("minPrice")),
                )
            )
        groups.append(AnalysisGroup(vehicle=vehicle, parts=parts))
    return AnalysisResult(groups=groups)


def parts_from_analysis(result: AnalysisResult) -> List[Part]:
    """Turn detected groups into new AVAILABLE parts ready to be added."""
    out: List[Part] = []
    for group in result.groups:
        v = group.vehicle
        for detected in group.parts:
            out.append(
                Part(
                    id=generate_id(),
                    name=detected.name,
                    category=normalize_category(detected.category),
                    status=PartStatus.AVAILABLE,
                    condition=detected.condition,
                    suggested_price=detected.suggested_price,
                    min_price=detected.min_price,
                    vehicle_info=VehicleInfo(
                        year=v.year, make=v.make, model=v.model, trim=v.trim, vin=v.vin
                    ),
                )
            )
    return out


class ContentAssist:
    """Interface of the content service as seen by the rest of the app."""

    def analyze_media(self, images: List[str], business: BusinessContext) -> AnalysisResult:
        raise NotImplementedError

    def pricing_insight(self, part: Part, business: BusinessContext) -> str:
        raise NotImplementedError

    def stagnant_strategy(self, part: Part, business: BusinessContext) -> str:
        raise NotImplementedError

    def generate_ad(self, part: Part, lang: str, business: BusinessContext) -> str:
        raise NotImplementedError


class GeminiContentAssist(ContentAssist):
    """ContentAssist backed by the Gemini generateContent REST endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        session: Optional[requests.Session] = None,
        timeout: float = 60,
        attempts: int = 3,
    ):
        self.api_key = api_key if api_key is not None else os.getenv("CONTENT_ASSIST_API_KEY", "")
        self.model = model
        self.session = session or requests.Session()
        self.timeout = timeout
        self.attempts = max(1, attempts)

    def _post(self, body: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{API_BASE}/models/{self.model}:generateContent"
        r = self.session.post(
            url,
            json=body,
            headers={"x-goog-api-key": self.api_key},
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json()

    def _generate(self, parts: List[Dict[str, Any]], system: str, json_mode: bool = False) -> str:
        if not self.api_key:
            raise ContentAssistError("Missing content assist API key")

        body: Dict[str, Any] = {
            "contents": [{"parts": parts}],
            "systemInstruction": {"parts": [{"text": system}]},
        }
        if json_mode:
            body["generationConfig"] = {"responseMimeType": "application/json"}

        call = retry(
            wait=wait_exponential_jitter(initial=1, max=30),
            stop=stop_after_attempt(self.attempts),
            retry=retry_if_exception_type(requests.RequestException),
        )(self._post)
        data = call(body)

        if not isinstance(data, dict):
            logger.warning("Unexpected content response type %s", type(data).__name__)
            return ""
        candidates = data.get("candidates") or []
        if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
            return ""
        content = candidates[0].get("content") or {}
        parts = content.get("parts") if isinstance(content, dict) else None
        return "".join(str(p.get("text", "")) for p in parts or [] if isinstance(p, dict))

    def _system(self, business: BusinessContext) -> str:
        reg = regional_info(business.location)
        return (
            f"You catalog used auto parts for {business.name} in {business.location or reg.country}. "
            f"Prices are in {reg.currency} for the {reg.market}. "
            f"Categories: {', '.join(c.value for c in PartCategory)}."
        )

    def analyze_media(self, images: List[str], business: BusinessContext) -> AnalysisResult:
        parts: List[Dict[str, Any]] = [
            {"inline_data": {"mime_type": "image/jpeg", "data": img}} for img in images
        ]
        parts.append({
            "text": "Identify every vehicle in these photos and list its visible parts. "
                    "Answer with JSON: {\"groups\": [{\"vehicle\": {year, make, model, trim, vin}, "
                    "\"parts\": [{name, category, condition, suggestedPrice, minPrice}]}]}",
        })
        try:
            text = self._generate(parts, self._system(business), json_mode=True)
        except (RetryError, requests.RequestException, ValueError) as e:
            logger.error("Media analysis failed: %s", e)
            return AnalysisResult()

        try:
            return parse_analysis(json.loads(text or '{"groups": []}'))
        except ValueError as e:
            logger.error("Could not parse analysis response: %s", e)
            return AnalysisResult()

    def _free_text(self, prompt: str, system: str, fallback: str) -> str:
        try:
            return self._generate([{"text": prompt}], system) or fallback
        except (RetryError, requests.RequestException, ValueError) as e:
            logger.error("Content request failed: %s", e)
            return fallback

    def pricing_insight(self, part: Part, business: BusinessContext) -> str:
        reg = regional_info(business.location)
        prompt = (
            f"Current market price for {part.name} from a {part.vehicle_info.label()} "
            f"in the {reg.market}. Our price is {part.suggested_price:.2f} {reg.currency}. "
            "Answer in at most three sentences with the market average and a recommendation."
        )
        return self._free_text(prompt, self._system(business), INSIGHT_FALLBACK)

    def stagnant_strategy(self, part: Part, business: BusinessContext) -> str:
        reg = regional_info(business.location)
        prompt = (
            f"{part.name} from a {part.vehicle_info.label()} has not sold in 90 days at "
            f"{part.suggested_price:.2f} {reg.currency}. Suggest a new price, a different ad "
            "angle and a likely reason it has not sold."
        )
        return self._free_text(prompt, self._system(business), STRATEGY_FALLBACK)

    def generate_ad(self, part: Part, lang: str, business: BusinessContext) -> str:
        reg = regional_info(business.location)
        language = "Spanish" if lang == "es" else "English"
        prompt = (
            f"Write a marketplace listing in {language} for {part.name} "
            f"({part.vehicle_info.label()}), condition {part.condition or 'used'}, "
            f"price {part.suggested_price:.2f} {reg.currency}, sold by {business.name}."
        )
        return self._free_text(prompt, self._system(business), "")
