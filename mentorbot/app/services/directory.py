# mentorbot/app/services/directory.py
"""
Mentor directory search and category filter (client-side, over the fetched list).
"""

from mentorbot.app.schemas.mentors import Mentor

ALL = "All"

CATEGORIES = [ALL, "IncomeTax", "GST", "Accounting", "Audit", "Investment", "Exam Oriented"]


def filter_mentors(
    mentors: list[Mentor],
    search_text: str = "",
    categories: list[str] | None = None,
) -> list[Mentor]:
    """
    Text matches name or expertise (case-insensitive substring).
    Categories: "All" matches everything, otherwise any selected category
    must appear in the mentor's expertise.
    """
    text = search_text.strip().lower()
    categories = categories or [ALL]
    wanted = [c.lower() for c in categories if c != ALL]

    result = []
    for mentor in mentors:
        specialization = mentor.specialization.lower()
        if text and text not in mentor.name.lower() and text not in specialization:
            continue
        if ALL not in categories and not any(c in specialization for c in wanted):
            continue
        result.append(mentor)
    return result


def toggle_category(selected: list[str], category: str) -> list[str]:
    """Category chip toggle. Picking "All" resets; an empty pick falls back to "All"."""
    if category == ALL:
        return [ALL]

    if category in selected:
        updated = [c for c in selected if c != category]
    else:
        updated = [c for c in selected if c != ALL] + [category]

    return updated or [ALL]
