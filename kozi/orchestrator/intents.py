# kozi/orchestrator/intents.py
from __future__ import annotations

import re
from enum import Enum
from typing import Dict, List, Optional, Pattern, Tuple


class Intent(str, Enum):
    CV_GENERATION = "cv_generation"
    JOBS = "jobs"
    JOB_APPLICATION = "job_application"
    GENERAL = "general"


def _rx(*patterns: str) -> List[Pattern[str]]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


# Checked in this order; first hit wins.
INTENT_PATTERNS: Tuple[Tuple[Intent, List[Pattern[str]]], ...] = (
    (Intent.CV_GENERATION, _rx(
        r"\b(create|write|make|generate|build|prepare|need)\b.*\b(cv|resume|résumé|curriculum vitae)\b",
        r"\bhelp\b.*\b(cv|resume|résumé)\b",
        r"\b(cv|resume)\s+(builder|creation|generation)\b",
    )),
    (Intent.JOBS, _rx(
        r"\b(find|search|show|list|available|looking for|any)\b.*\b(jobs?|vacanc(y|ies)|openings?|work)\b",
        r"\bwhat\s+jobs\b",
        r"\bjobs?\s+(available|openings?|near|in)\b",
        r"\bhiring\b",
    )),
    (Intent.JOB_APPLICATION, _rx(
        r"\bapply\b.*\b(to|for)\b.*\b(job|position|number|no\.?|#)",
        r"\bhow\s+(do\s+i|to|can\s+i)\s+apply\b",
        r"\bapply\b.*\b\d+\b",
        r"\bsubmit\b.*\bapplication\b",
    )),
)


def classify(message: str) -> Intent:
    text = message or ""
    for intent, patterns in INTENT_PATTERNS:
        if any(p.search(text) for p in patterns):
            return intent
    return Intent.GENERAL


# ---------- job-search preferences ----------
# keyword -> category as known upstream
CATEGORY_KEYWORDS: Dict[str, str] = {
    "cleaning": "cleaning",
    "cleaner": "cleaning",
    "housekeeping": "housekeeping",
    "housekeeper": "housekeeping",
    "housemaid": "housemaid",
    "maid": "housemaid",
    "babysitter": "babysitting",
    "babysitting": "babysitting",
    "nanny": "babysitting",
    "security": "security",
    "guard": "security",
    "cook": "cooking",
    "chef": "cooking",
    "cooking": "cooking",
    "driver": "driving",
    "driving": "driving",
    "gardener": "gardening",
    "gardening": "gardening",
    "pool": "pool cleaning",
    "accountant": "accounting",
    "accounting": "accounting",
    "designer": "design",
    "developer": "software",
    "software": "software",
    "marketing": "marketing",
    "caregiver": "care",
    "elderly care": "care",
}

LOCATION_KEYWORDS: Tuple[str, ...] = (
    "kigali", "gasabo", "kicukiro", "nyarugenge", "remera", "kacyiru", "kimironko", "nyamirambo",
    "musanze", "huye", "rubavu", "gisenyi", "nyagatare", "muhanga", "rusizi", "rwamagana",
    "gicumbi", "karongi", "bugesera",
)

WORK_TYPE_KEYWORDS: Dict[str, str] = {
    "full-time": "full-time",
    "full time": "full-time",
    "fulltime": "full-time",
    "part-time": "part-time",
    "part time": "part-time",
    "parttime": "part-time",
    "contract": "contract",
    "temporary": "temporary",
    "remote": "remote",
}


def _first_keyword(text: str, keywords) -> Optional[str]:
    for kw in keywords:
        if re.search(rf"\b{re.escape(kw)}\b", text):
            return kw
    return None


def extract_preferences(message: str) -> Dict[str, str]:
    """category / location / work_type found in the message (absent keys omitted)."""
    text = (message or "").lower()
    prefs: Dict[str, str] = {}
    kw = _first_keyword(text, CATEGORY_KEYWORDS)
    if kw:
        prefs["category"] = CATEGORY_KEYWORDS[kw]
    kw = _first_keyword(text, LOCATION_KEYWORDS)
    if kw:
        prefs["location"] = kw
    kw = _first_keyword(text, WORK_TYPE_KEYWORDS)
    if kw:
        prefs["work_type"] = WORK_TYPE_KEYWORDS[kw]
    return prefs


# ---------- misc message features ----------
TOPIC_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "profile": ("profile", "complete", "update", "information"),
    "cv": ("cv", "resume", "curriculum"),
    "jobs": ("job", "work", "employment", "apply", "application"),
    "documents": ("upload", "document", "id", "photo", "file"),
    "help": ("help", "support", "assist", "guide"),
}

KOZI_KEYWORDS: Tuple[str, ...] = (
    "profile", "cv", "resume", "job", "work", "employ", "upload", "document", "id", "photo",
    "complete", "apply", "kozi", "salary", "employer", "experience", "skill", "education",
    "phone", "location", "name", "hello", "hi", "hey", "help", "thank", "contract", "fee", "payment",
)

_NUMBER_RE = re.compile(r"(?:job|number|no\.?|#|position)\s*(\d+)\b|\b(\d+)\b", re.IGNORECASE)


def _words(message: str) -> List[str]:
    return re.findall(r"[a-z0-9']+", (message or "").lower())


def extract_topics(message: str) -> List[str]:
    words = _words(message)
    return [
        topic for topic, kws in TOPIC_KEYWORDS.items()
        if any(w.startswith(k) for k in kws for w in words)
    ]


def is_kozi_related(message: str) -> bool:
    words = _words(message)
    return any(w.startswith(k) for k in KOZI_KEYWORDS for w in words)


def extract_job_number(message: str) -> Optional[int]:
    """1-based job position the user refers to ("job number 2", "apply to #3")."""
    m = _NUMBER_RE.search(message or "")
    if not m:
        return None
    return int(m.group(1) or m.group(2))
