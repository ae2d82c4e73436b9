"""
Citation Formatter - Render a CandidateWork as APA, MLA, Chicago or Harvard.
"""

from typing import Dict, Optional, Sequence, Tuple

from .sources import CandidateWork

STYLES = ("APA", "MLA", "Chicago", "Harvard")

NAME_PARTICLES = {"van", "von", "de", "der", "den", "del", "della", "di", "da", "du", "la", "le", "dos"}


def split_name(name: str) -> Tuple[str, str]:
    """Split "Given Family" into (given, family), keeping particles with the family."""
    name = " ".join(name.split())
    if "," in name:
        family, _, given = name.partition(",")
        return given.strip(), family.strip()

    parts = name.split()
    if len(parts) <= 1:
        return "", name.strip()

    i = len(parts) - 1
    while i > 1 and parts[i - 1].lower() in NAME_PARTICLES:
        i -= 1
    return " ".join(parts[:i]), " ".join(parts[i:])


def _initials(given: str) -> str:
    return " ".join(f"{part[0]}." for part in given.replace("-", " ").split() if part)


def _apa_name(name: str) -> str:
    given, family = split_name(name)
    initials = _initials(given)
    return f"{family}, {initials}" if initials else family


def _inverted_name(name: str) -> str:
    given, family = split_name(name)
    return f"{family}, {given}" if given else family


def format_authors(names: Sequence[str], style: str = "APA") -> str:
    """Author list in the given style's conventions."""
    names = [n for n in names if n and n.strip()]
    if not names:
        return "Unknown"

    if style == "MLA":
        if len(names) == 1:
            return _inverted_name(names[0])
        if len(names) == 2:
            return f"{_inverted_name(names[0])}, and {names[1]}"
        return f"{_inverted_name(names[0])}, et al."

    if style == "Chicago":
        if len(names) > 3:
            return f"{_inverted_name(names[0])}, et al."
        if len(names) == 1:
            return _inverted_name(names[0])
        if len(names) == 2:
            return f"{_inverted_name(names[0])}, and {names[1]}"
        return f"{_inverted_name(names[0])}, {names[1]}, and {names[2]}"

    formatted = [_apa_name(n) for n in names]
    if style == "Harvard":
        if len(formatted) > 3:
            return f"{formatted[0]} et al."
        if len(formatted) == 1:
            return formatted[0]
        return ", ".join(formatted[:-1]) + f" and {formatted[-1]}"

    # APA
    if len(formatted) > 3:
        return ", ".join(formatted[:3]) + ", et al."
    if len(formatted) == 1:
        return formatted[0]
    return ", ".join(formatted[:-1]) + f", & {formatted[-1]}"


def _sentence(text: str) -> str:
    text = text.strip()
    return text if text.endswith((".", "?", "!")) else f"{text}."


def format_citation(work: CandidateWork, style: str = "APA") -> str:
    """Render one work in APA, MLA, Chicago or Harvard style."""
    if style not in STYLES:
        raise ValueError(f"Unknown citation style: {style}")

    authors = format_authors(work.authors, style)
    year = str(work.year) if work.year else "n.d."
    title = (work.title or "Untitled").strip()
    journal = (work.journal or "").strip()
    doi_url = f"https://doi.org/{work.doi}" if work.doi else None

    if style == "APA":
        parts = [f"{authors} ({year}).", _sentence(title)]
        if journal:
            parts.append(_sentence(journal))
        if doi_url:
            parts.append(doi_url)
        return " ".join(parts)

    if style == "MLA":
        parts = [_sentence(authors), f'"{_sentence(title)}"']
        parts.append(f"{journal}, {year}." if journal else f"{year}.")
        if work.doi:
            parts.append(f"doi:{work.doi}.")
        return " ".join(parts)

    if style == "Chicago":
        parts = [_sentence(authors), f'"{_sentence(title)}"']
        parts.append(f"{journal} ({year})." if journal else f"({year}).")
        if doi_url:
            parts.append(f"{doi_url}.")
        return " ".join(parts)

    # Harvard
    parts = [f"{authors} ({year})", f"'{title}',"]
    parts.append(_sentence(journal) if journal else "")
    if doi_url:
        parts.append(f"Available at: {doi_url}.")
    return " ".join(p for p in parts if p)


def format_all(work: CandidateWork, styles: Optional[Sequence[str]] = None) -> Dict[str, str]:
    """Render a work in several styles, APA/MLA/Chicago by default."""
    styles = styles or ("APA", "MLA", "Chicago")
    return {style: format_citation(work, style) for style in styles}


def work_metadata(work: CandidateWork) -> Dict[str, object]:
    """Plain metadata dict for a work, as attached to fixer results."""
    return {
        "title": work.title,
        "authors": list(work.authors),
        "year": work.year,
        "journal": work.journal,
        "doi": work.doi,
        "url": work.url or (f"https://doi.org/{work.doi}" if work.doi else None),
        "source": work.source.value,
    }
