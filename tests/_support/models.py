"""Sample declarations used across the test suite."""

from __future__ import annotations

import datetime as dt

from strata import AttributesMixin, Entity, Text, column, eav, junction, record


@record("authors")
class Author(AttributesMixin, Entity):
    name: str = column(unique=True)
    bio: Text | None = column()
    attributes: dict[str, str] | None = eav("authors_eav")


@record("books")
class Book(Entity):
    title: str = column(unique="title_author")
    author: Author = column(unique="title_author")


@junction("authors_to_books", author=Author, book=Book)
class AuthorsToBooks:
    pass


@junction("co_authors", author="Author", book="_support.models.Book")
class CoAuthors:
    pass


@record("samples")
class Sample(Entity):
    flag: bool = column()
    count: int = column()
    ratio: float = column()
    label: str | None = column()
    note: Text | None = column()
    payload: bytes | None = column()
    created: dt.datetime | None = column()
    meta: dict | None = column()
    reviewer: Author | None = column()
    scores: dict[str, int] | None = eav("samples_scores", int)


@record("loose")
class Loose(Entity):
    """Undeclared types fall back to the default's type, then nullable string."""

    counter = column(default=5)
    anything = column()
    explicit = column("double")
