"""Tests for the catalog filters."""

from __future__ import annotations

import pytest
from gcmn_portal.catalog import (
    CLASSES,
    SUBJECTS_BY_CLASS,
    Book,
    Note,
    filter_books,
    filter_notes,
    subjects_for_class,
)


@pytest.fixture
def books() -> list[Book]:
    return [
        Book(id="1", title="Introduction to Algorithms", author="Cormen", isbn="9780262033848",
             category="Computer Science"),
        Book(id="2", title="Aag Ka Darya", author="Qurratulain Hyder", category="Urdu"),
        Book(id="3", title="Concepts of Physics", author="H. C. Verma", isbn="9788177091878",
             category="Physics"),
    ]


@pytest.fixture
def notes() -> list[Note]:
    return [
        Note(id="n1", title="Kinematics", student_class="Class 11", subject="Physics"),
        Note(id="n2", title="Organic Reactions", student_class="Class 12", subject="Chemistry"),
        Note(id="n3", title="Vectors", student_class="Class 11", subject="Mathematics"),
    ]


class TestBooks:
    def test_no_filters(self, books):
        assert filter_books(books) == books

    @pytest.mark.parametrize(
        ("term", "expected"),
        [("algorithms", ["1"]), ("HYDER", ["2"]), ("9788177", ["3"]), ("nothing", [])],
    )
    def test_term_matches_title_author_isbn(self, books, term, expected):
        assert [b.id for b in filter_books(books, term)] == expected

    def test_category(self, books):
        assert [b.id for b in filter_books(books, category="Urdu")] == ["2"]

    def test_term_and_category(self, books):
        assert filter_books(books, "verma", "Urdu") == []


class TestNotes:
    def test_by_class(self, notes):
        assert [n.id for n in filter_notes(notes, "Class 11")] == ["n1", "n3"]

    def test_by_class_and_subject(self, notes):
        assert [n.id for n in filter_notes(notes, "Class 11", "Physics")] == ["n1"]

    def test_subjects_for_class(self):
        assert "Physics" in subjects_for_class("Class 11")
        assert subjects_for_class("Class 9") == ()

    def test_every_class_has_subjects(self):
        assert set(SUBJECTS_BY_CLASS) == set(CLASSES)
