"""
Triage Domain Entities
======================

Domain entities for complaint classification.

Contains the classification result, the prompt builder and the rules that
turn raw model output into a normalised result.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from dcms.config import DEPARTMENT_CODES, UrgencyLevel
from dcms.core import ClassificationException

# Free-text department names the model sometimes returns instead of a code
DEPARTMENT_MAPPINGS = {
    "water": "WATER",
    "water supply": "WATER",
    "water leak": "WATER",
    "water contamination": "WATER",
    "electricity": "ELECTRICITY",
    "power": "ELECTRICITY",
    "power outage": "ELECTRICITY",
    "street light": "ELECTRICITY",
    "electrical": "ELECTRICITY",
    "sanitation": "SANITATION",
    "garbage": "SANITATION",
    "waste": "SANITATION",
    "sewage": "SANITATION",
    "cleaning": "SANITATION",
    "safety": "SAFETY",
    "public safety": "SAFETY",
    "accident": "SAFETY",
    "hazard": "SAFETY",
    "emergency": "SAFETY",
    "road": "ROADS",
    "roads": "ROADS",
    "pothole": "ROADS",
    "infrastructure": "ROADS",
    "traffic": "ROADS",
    "other": "OTHER",
    "general": "OTHER",
}

MAX_REASONING_LENGTH = 500
MAX_KEYWORDS = 10
DEFAULT_CONFIDENCE = 0.5
DEFAULT_SUGGESTED_PRIORITY = 50


@dataclass
class ClassificationResult:
    """
    Result of complaint classification.

    Contains the department and urgency assigned by the LLM.
    """
    department: str
    department_code: str
    urgency: UrgencyLevel
    confidence: float  # 0.0 to 1.0
    reasoning: str
    keywords: List[str] = field(default_factory=list)
    suggested_priority: float = DEFAULT_SUGGESTED_PRIORITY
    model_used: Optional[str] = None
    latency_ms: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        """Validate classification result."""
        self.urgency = UrgencyLevel(self.urgency)
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("Confidence must be between 0 and 1")


class ClassificationPromptBuilder:
    """
    Builds prompts for complaint classification.

    All prompt text in one place.
    """

    SYSTEM_PROMPT = """You are an AI assistant for a government Digital Complaint Management System. Your task is to analyze citizen complaints and classify them accurately.

IMPORTANT RULES:
1. Output ONLY valid JSON - no explanations outside JSON
2. Use ONLY the exact department codes provided
3. Confidence score must be between 0.0 and 1.0
4. Be conservative with confidence - if uncertain, use lower confidence

DEPARTMENT CODES (use exactly as shown):
- WATER: Water supply issues, leaks, contamination, water quality, pipe bursts
- ELECTRICITY: Power outages, electrical hazards, street lights, transformers
- SANITATION: Garbage collection, sewage, public cleanliness, waste management
- SAFETY: Road hazards, public safety concerns, accidents, dangerous conditions
- ROADS: Potholes, road damage, traffic signals, infrastructure problems
- OTHER: General complaints not fitting other categories

URGENCY LEVELS:
- critical: Immediate danger to life, health emergency, major infrastructure failure
- high: Significant inconvenience, affects many people, time-sensitive
- normal: Standard complaint, no immediate urgency

Respond ONLY in JSON format:
{
    "department": "Department name (e.g., Water Supply)",
    "department_code": "DEPARTMENT_CODE",
    "urgency": "normal|high|critical",
    "confidence": 0.85,
    "reasoning": "Brief explanation (max 200 chars)",
    "keywords": ["keyword1", "keyword2"],
    "suggested_priority": 50
}"""

    @classmethod
    def build_prompt(cls, description: str, location_context: Optional[str] = None) -> str:
        """Build classification prompt from complaint content."""
        prompt = f"""Complaint:
---
{description}
---"""
        if location_context:
            prompt += f"\nLOCATION: {location_context}"
        return prompt + "\n\nClassify this complaint (respond with JSON only):"

    @classmethod
    def get_system_prompt(cls) -> str:
        """Get the system prompt for classification."""
        return cls.SYSTEM_PROMPT


def extract_json(text: str) -> str:
    """Strip markdown code fences around a JSON payload."""
    content = text.strip()
    if "```json" in content:
        content = content.split("```json", 1)[1].split("```", 1)[0]
    elif "```" in content:
        content = content.split("```", 1)[1].split("```", 1)[0]
    return content.strip()


def normalize_department_code(code: Optional[str], department: Optional[str]) -> str:
    """Known code as-is, else map the department name, else OTHER."""
    normalized = str(code or "").strip().upper()
    if normalized in DEPARTMENT_CODES:
        return normalized
    return DEPARTMENT_MAPPINGS.get(str(department or "").strip().lower(), "OTHER")


def normalize_urgency(value: Optional[str]) -> UrgencyLevel:
    try:
        return UrgencyLevel(str(value or "").strip().lower())
    except ValueError:
        return UrgencyLevel.NORMAL


def normalize_confidence(value) -> float:
    """Out-of-range or unparseable confidence becomes 0.5."""
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if confidence != confidence or not 0.0 <= confidence <= 1.0:
        return DEFAULT_CONFIDENCE
    return round(confidence, 2)


def parse_classification(text: Optional[str], model_used: Optional[str] = None) -> ClassificationResult:
    """
    Turn raw model output into a normalised ClassificationResult.

    Raises:
        ClassificationException: If the output is empty, not JSON, or misses
            department_code, urgency or confidence
    """
    if not text or not text.strip():
        raise ClassificationException("Empty response from classifier")

    try:
        data = json.loads(extract_json(text))
    except json.JSONDecodeError as e:
        raise ClassificationException(f"Failed to parse classification response: {e}")

    if not isinstance(data, dict):
        raise ClassificationException("Classification response is not a JSON object")

    if not data.get("department_code") or not data.get("urgency") or data.get("confidence") is None:
        raise ClassificationException(
            "Missing required fields in classification response",
            {"fields": sorted(data.keys())}
        )

    department_code = normalize_department_code(data.get("department_code"), data.get("department"))
    keywords = data.get("keywords")

    try:
        suggested_priority = float(data.get("suggested_priority") or DEFAULT_SUGGESTED_PRIORITY)
    except (TypeError, ValueError):
        suggested_priority = DEFAULT_SUGGESTED_PRIORITY

    return ClassificationResult(
        department=str(data.get("department") or department_code),
        department_code=department_code,
        urgency=normalize_urgency(data.get("urgency")),
        confidence=normalize_confidence(data.get("confidence")),
        reasoning=str(data.get("reasoning") or "Classification completed")[:MAX_REASONING_LENGTH],
        keywords=[str(k) for k in keywords[:MAX_KEYWORDS]] if isinstance(keywords, list) else [],
        suggested_priority=suggested_priority,
        model_used=model_used,
    )
