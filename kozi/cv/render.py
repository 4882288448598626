from __future__ import annotations
from typing import Any, Dict, List
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import mm
from reportlab.platypus import (
    HRFlowable, ListFlowable, ListItem, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
)

# =========================
# Theme & Spacing
# =========================
THEMES = {
    "professional": {
        "accent": colors.Color(0/255, 122/255, 98/255),        # green
        "accent_alt": colors.Color(30/255, 96/255, 166/255),   # blue
        "pill_bg": colors.Color(233/255, 247/255, 241/255),    # very light green
        "text": colors.black,
        "muted": colors.Color(0.35, 0.35, 0.35),
        "rule": colors.Color(0/255, 122/255, 98/255),
    }
}

SECTION_TOP = 14
PARA_GAP = 5
LINE_GAP = 3

# =========================
# Paragraph helpers
# =========================
def _esc(value: Any) -> str:
    return escape(str(value or "").strip())

def _h(text: str, theme: Dict[str, Any]) -> Paragraph:
    return Paragraph(
        text.upper(),
        ParagraphStyle(
            "Heading",
            fontName="Helvetica-Bold",
            fontSize=10.5,
            leading=13,
            spaceBefore=SECTION_TOP,
            spaceAfter=6,
            textColor=theme["accent"],
        ),
    )

def _p(text: str, theme: Dict[str, Any], size=9.7, leading=13) -> Paragraph:
    return Paragraph(
        text,
        ParagraphStyle(
            "Body",
            fontName="Helvetica",
            fontSize=size,
            leading=leading,
            spaceAfter=LINE_GAP,
            textColor=theme["text"],
        ),
    )

def _rule(theme: Dict[str, Any]) -> HRFlowable:
    return HRFlowable(width="100%", thickness=0.75, color=theme["rule"], spaceBefore=4, spaceAfter=8)

def _bullets(items: List[str], theme: Dict[str, Any]) -> ListFlowable:
    li = [ListItem(_p(_esc(i), theme), leftIndent=8) for i in items if i]
    return ListFlowable(
        li,
        bulletType="bullet",
        start="–",
        leftIndent=10,
        bulletOffsetY=1,
        bulletFontName="Helvetica",
        bulletFontSize=9,
    )

def _skills_pills(items: List[str], theme: Dict[str, Any], per_row=4) -> Table:
    """Skills as light 'pills', per_row to a line."""
    style = ParagraphStyle(
        "Pill",
        fontName="Helvetica",
        fontSize=9,
        textColor=theme["accent_alt"],
        backColor=theme["pill_bg"],
        leading=12,
    )
    chips = [Paragraph(f"&nbsp;{_esc(s)}&nbsp;", style) for s in items if s]
    rows = [chips[i:i + per_row] for i in range(0, len(chips), per_row)] or [[""]]
    width = max(len(r) for r in rows)
    for r in rows:
        r.extend([""] * (width - len(r)))
    return Table(
        rows,
        style=TableStyle([
            ("LEFTPADDING", (0, 0), (-1, -1), 4),
            ("RIGHTPADDING", (0, 0), (-1, -1), 4),
            ("TOPPADDING", (0, 0), (-1, -1), 2),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 2),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ]),
        hAlign="LEFT",
    )

def _header_block(story: List[Any], contact: Dict[str, Any], theme: Dict[str, Any]) -> None:
    name = _esc(contact.get("full_name")).upper() or "CURRICULUM VITAE"
    story.append(Paragraph(name, ParagraphStyle(
        "Name", fontName="Helvetica-Bold", fontSize=19, leading=22, textColor=theme["text"],
    )))
    bits = [
        f"<b>{label}:</b> {_esc(contact.get(key))}"
        for key, label in (("location", "City"), ("phone", "Phone"), ("email", "Email"))
        if contact.get(key)
    ]
    if bits:
        story.append(Paragraph(" &#183; ".join(bits), ParagraphStyle(
            "Contact", fontName="Helvetica", fontSize=9, leading=12, textColor=theme["muted"],
        )))
    story.append(_rule(theme))

# =========================
# Public API
# =========================
def render_cv_pdf(path: str, cv: Dict[str, Any], template_name: str = "professional") -> str:
    """
    Render the structured CV built by the CV generation flow:
    {contact, summary, experience, education, skills, certifications, languages}
    """
    theme = THEMES.get(template_name, THEMES["professional"])
    doc = SimpleDocTemplate(
        path, pagesize=A4,
        leftMargin=18*mm, rightMargin=18*mm, topMargin=16*mm, bottomMargin=16*mm,
        allowSplitting=True,
    )
    story: List[Any] = []

    _header_block(story, cv.get("contact") or {}, theme)

    summary = (cv.get("summary") or "").strip()
    if summary:
        story.append(_h("Profile", theme))
        story.append(_p(_esc(summary), theme))

    skills = [s for s in (cv.get("skills") or []) if s]
    if skills:
        story.append(_h("Skills", theme))
        story.append(_skills_pills(skills, theme))

    exp = cv.get("experience") or []
    if exp:
        story.append(_h("Work Experience", theme))
        for e in exp:
            head = " &#183; ".join(s for s in [
                f"<b>{_esc(e.get('title'))}</b>" if e.get("title") else "",
                _esc(e.get("company")),
                _esc(e.get("dates")),
            ] if s)
            story.append(_p(head, theme))
            resp = e.get("responsibilities") or []
            if isinstance(resp, str):
                resp = [resp]
            if resp:
                story.append(_bullets(resp, theme))
            story.append(Spacer(1, PARA_GAP))

    edu = cv.get("education") or []
    if edu:
        story.append(_h("Education", theme))
        for e in edu:
            line = " &#183; ".join(s for s in [
                _esc(e.get("level")), _esc(e.get("institution")), _esc(e.get("year"))
            ] if s)
            story.append(_p(line, theme))
            if e.get("details"):
                story.append(_p(f"<i>{_esc(e['details'])}</i>", theme, size=9))

    certs = cv.get("certifications") or []
    if certs:
        story.append(_h("Certifications", theme))
        story.append(_bullets([
            ", ".join(s for s in [c.get("name"), c.get("issuer"), c.get("date")] if s)
            if isinstance(c, dict) else str(c)
            for c in certs
        ], theme))

    langs = cv.get("languages") or []
    if langs:
        story.append(_h("Languages", theme))
        story.append(_p(", ".join(
            _esc(f"{l.get('language')} ({l.get('proficiency')})" if l.get("proficiency") else l.get("language"))
            if isinstance(l, dict) else _esc(l)
            for l in langs
        ), theme))

    doc.build(story)
    return path
