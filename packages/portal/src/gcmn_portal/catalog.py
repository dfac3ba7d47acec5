"""Book and notes catalog filters for the public pages.

The catalog itself is static content shipped with the site; these helpers
only filter it.
"""

from pydantic import BaseModel

from gcmn_portal.forms import CARD_CLASSES

ALL = "All"

BOOK_CATEGORIES = (
    ALL,
    "Computer Science",
    "Mathematics",
    "Physics",
    "Chemistry",
    "Biology",
    "English",
    "Urdu",
    "Islamic Studies",
    "Economics",
    "Commerce",
)

CLASSES = CARD_CLASSES

SUBJECTS_BY_CLASS: dict[str, tuple[str, ...]] = {
    "Class 11": ("English", "Urdu", "Islamic Studies", "Physics", "Chemistry", "Mathematics", "Biology", "Computer Science"),
    "Class 12": ("English", "Urdu", "Pakistan Studies", "Physics", "Chemistry", "Mathematics", "Biology", "Computer Science"),
    "ADA I": ("English", "Urdu", "Islamic Studies", "Economics", "Education", "Political Science"),
    "ADA II": ("English", "Urdu", "Pakistan Studies", "Economics", "Education", "Political Science"),
    "BSC I": ("English", "Islamic Studies", "Physics", "Chemistry", "Mathematics", "Zoology", "Botany"),
    "BSC II": ("English", "Pakistan Studies", "Physics", "Chemistry", "Mathematics", "Zoology", "Botany"),
}


class Book(BaseModel):
    id: str
    title: str
    author: str
    isbn: str = ""
    category: str
    available: bool = True


class Note(BaseModel):
    id: str
    title: str
    student_class: str
    subject: str
    url: str = ""


def filter_books(books: list[Book], term: str = "", category: str = ALL) -> list[Book]:
    """Case-insensitive match on title, author or ISBN, within a category."""
    needle = term.strip().lower()
    return [
        b
        for b in books
        if (category == ALL or b.category == category)
        and (not needle or needle in b.title.lower() or needle in b.author.lower() or needle in b.isbn.lower())
    ]


def subjects_for_class(student_class: str) -> tuple[str, ...]:
    return SUBJECTS_BY_CLASS.get(student_class, ())


def filter_notes(notes: list[Note], student_class: str = ALL, subject: str = ALL) -> list[Note]:
    return [
        n
        for n in notes
        if (student_class == ALL or n.student_class == student_class)
        and (subject == ALL or n.subject == subject)
    ]
