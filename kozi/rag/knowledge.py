from __future__ import annotations
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Tuple

from kozi.rag.retrieval import RetrievalService
from kozi.settings import SETTINGS

logger = logging.getLogger(__name__)

CHUNK_CHARS = 1500

# (id, text, metadata)
SEED_DOCUMENTS: List[Tuple[str, str, Dict[str, Any]]] = [
    (
        "kozi-about",
        "Kozi is an innovative digital platform that connects employees with employers in Rwanda. "
        "Founded in 2021, Kozi operates in the domestic services industry, specifically within "
        "housekeeping and personal care services. The platform serves businesses of all sizes across "
        "multiple industries with a commitment to transparency and efficiency.",
        {"type": "company_info", "category": "about"},
    ),
    (
        "kozi-mission",
        "Kozi's mission is to bridge the gap between employers and job seekers by providing a smart, "
        "data-driven recruitment platform that ensures a faster, fairer, and more reliable hiring process.",
        {"type": "company_info", "category": "mission"},
    ),
    (
        "kozi-contact",
        "Contact Kozi: Phone: +250 788 719 678, Email: info@kozi.rw, Address: Kigali-Kacyiru, KG 647 St. "
        "Website: www.kozi.rw. For support, contact support@kozi.rw",
        {"type": "contact_info", "category": "support"},
    ),
    (
        "profile-completion",
        "To complete your Kozi profile: 1) Add personal information (full name, phone, location), "
        "2) Select job category and experience level, 3) Upload required documents (CV and ID card), "
        "4) Add profile photo (optional), 5) Complete skills and work experience sections. "
        "Profile completion increases your visibility with employers.",
        {"type": "guidance", "category": "profile"},
    ),
    (
        "profile-benefits",
        "Completing your profile gives you: job placement opportunities, steady income potential, "
        "flexible work options, career advancement, professional development, training opportunities, "
        "safety and protection, management support. A complete profile boosts your chances of being hired.",
        {"type": "guidance", "category": "benefits"},
    ),
    (
        "required-documents",
        "Required documents for Kozi registration: 1) CV (PDF, DOC, or DOCX format, max 5MB), "
        "2) National ID card (JPG, PNG, or PDF, max 2MB), 3) Profile photo (JPG or PNG, max 1MB, optional "
        "but recommended). All documents help verify your identity and qualifications.",
        {"type": "guidance", "category": "documents"},
    ),
    (
        "job-categories",
        "Kozi offers two main job categories: Advanced Workers (graphic designers, accountants, "
        "professional chefs, software developers, marketing experts) and Basic Workers (professional "
        "cleaners, housemaids, babysitters, security guards, pool cleaners). Choose the category that "
        "matches your skills and experience.",
        {"type": "jobs", "category": "categories"},
    ),
    (
        "application-process",
        "Job application process on Kozi: 1) Register and complete your profile, 2) Pay registration "
        "fees if required, 3) Fill in all information completely, 4) Apply to published jobs matching "
        "your skills, 5) Wait for employer selection, 6) Get hired through Kozi's managed process.",
        {"type": "jobs", "category": "process"},
    ),
    (
        "cv-structure",
        "Professional CV structure: 1) Contact Information (name, phone, email, location), "
        "2) Professional Summary (2-3 lines about skills and goals), 3) Work Experience (past jobs with "
        "achievements), 4) Education (highest level first), 5) Skills (relevant to job category), "
        "6) Certifications/Training, 7) Languages. Keep it clear, short, and targeted to the job.",
        {"type": "guidance", "category": "cv"},
    ),
    (
        "cv-tips",
        "CV writing tips: use action verbs, quantify achievements with numbers, keep it relevant to your "
        "job category, use clear formatting, avoid spelling errors, include only recent work experience "
        "(last 5-10 years), highlight skills that match job requirements.",
        {"type": "guidance", "category": "cv"},
    ),
    (
        "upload-process",
        "Document upload process: 1) Go to your profile page, 2) Click on document upload section, "
        "3) Select CV file (required), 4) Upload ID card photo or scan (required), 5) Add profile photo "
        "(optional), 6) Verify all uploads are successful. Documents are reviewed by the Kozi team.",
        {"type": "process", "category": "documents"},
    ),
    (
        "upload-requirements",
        "Upload requirements: CV files must be PDF, DOC, or DOCX under 5MB. ID cards must be JPG, PNG, "
        "or PDF under 2MB. Profile photos must be JPG or PNG under 1MB. Ensure documents are clear, "
        "readable, and match your profile details.",
        {"type": "requirements", "category": "documents"},
    ),
    (
        "kozi-management",
        "Kozi manages worker employment: all payments go through Kozi (not direct to client), Kozi takes "
        "a 10% management fee transparently, workers receive training and ongoing support, contract "
        "duration is typically 6 months, replacement guarantee within the first 30 days if issues arise.",
        {"type": "contract", "category": "management"},
    ),
    (
        "worker-benefits",
        "Worker benefits with Kozi: job security and steady income, professional development and "
        "training, safety and worker protection, management support and check-ins, legal support "
        "documentation when needed, community support network, career advancement opportunities.",
        {"type": "contract", "category": "benefits"},
    ),
    (
        "legal-support",
        "Kozi legal support policy: in case of incidents involving theft, damage, or loss of property, "
        "Kozi provides the worker's full registration information, background details, and documents for "
        "legal proceedings. Kozi is not financially responsible for worker actions; clients must take "
        "security measures and report criminal matters to authorities.",
        {"type": "contract", "category": "legal"},
    ),
]


def extract_text(path: str | Path) -> str:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)
    if p.suffix.lower() == ".pdf":
        from pdfminer.high_level import extract_text as pdf_extract
        return pdf_extract(str(p))
    if p.suffix.lower() == ".docx":
        from docx import Document
        doc = Document(str(p))
        return "\n".join(paragraph.text for paragraph in doc.paragraphs)
    raise ValueError(f"Unsupported knowledge document format: {p.suffix}")


def chunk_text(text: str, max_chars: int = CHUNK_CHARS) -> List[str]:
    """Paragraph-aligned chunks of at most max_chars (a longer paragraph is split hard)."""
    paras = [" ".join(p.split()) for p in re.split(r"\n\s*\n", text or "")]
    chunks: List[str] = []
    buf = ""
    for para in filter(None, paras):
        while len(para) > max_chars:
            if buf:
                chunks.append(buf)
                buf = ""
            chunks.append(para[:max_chars])
            para = para[max_chars:]
        if buf and len(buf) + 2 + len(para) > max_chars:
            chunks.append(buf)
            buf = ""
        buf = f"{buf}\n\n{para}" if buf else para
    if buf:
        chunks.append(buf)
    return chunks


def tags_for(filename: str) -> List[str]:
    f = filename.lower()
    if "agreement" in f:
        return ["contract", "house cleaner", "fees", "payment", "terms"]
    if "request" in f:
        return ["job provider", "form", "requirements", "fees"]
    if "guidelines" in f:
        return ["worker", "guidelines", "conduct", "benefits", "process"]
    if "business profile" in f:
        return ["company", "about", "services", "contact"]
    return []


class KnowledgeLoader:
    def __init__(self, retrieval: RetrievalService, docs_dir: str | Path | None = None) -> None:
        self.retrieval = retrieval
        self.docs_dir = Path(docs_dir or SETTINGS.docs_dir)

    async def load_seed_documents(self) -> int:
        added = 0
        for doc_id, text, metadata in SEED_DOCUMENTS:
            if await self.retrieval.add_document(doc_id, text, metadata):
                added += 1
        return added

    async def load_local_documents(self) -> int:
        if not self.docs_dir.exists():
            logger.info("No local knowledge folder at %s", self.docs_dir)
            return 0
        files = sorted(p for p in self.docs_dir.iterdir() if p.suffix.lower() in (".pdf", ".docx"))
        if not files:
            logger.info("No PDF/DOCX files in %s", self.docs_dir)
            return 0

        added = 0
        for path in files:
            try:
                chunks = chunk_text(extract_text(path))
            except Exception as e:
                logger.error("Failed to read %s: %s", path.name, e)
                continue
            meta = {"type": path.suffix.lower().lstrip("."), "source": path.name, "tags": tags_for(path.name)}
            stem = re.sub(r"\s+", "-", path.stem.strip().lower())
            for i, chunk in enumerate(chunks, 1):
                try:
                    if await self.retrieval.add_document(f"{stem}-{i}", chunk, {**meta, "chunk": i}):
                        added += 1
                except Exception as e:
                    logger.error("Failed to index %s chunk %d: %s", path.name, i, e)
        logger.info("Indexed %d chunks from %d local documents", added, len(files))
        return added

    async def load_all(self) -> int:
        self.retrieval.store.initialize()
        total = await self.load_seed_documents()
        total += await self.load_local_documents()
        logger.info("Kozi knowledge base loaded (%d documents)", total)
        return total
