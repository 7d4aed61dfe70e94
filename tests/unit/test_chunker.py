"""Unit tests for the chunker module."""

from wikillm.ingestion.chunker import heading_tags, split_into_chunks


def test_heading_tags_apply_to_following_chunks() -> None:
    """Words shorter than four characters ("One") are not tags."""
    chunks = split_into_chunks("=Heading One=\n\npara a\n\npara b")
    assert [c.content for c in chunks] == ["para a", "para b"]
    assert all(c.tags == ("heading",) for c in chunks)


def test_numbering_and_totals_skip_headings() -> None:
    chunks = split_into_chunks("first\n\n== Findings ==\n\nsecond\n\nthird")
    assert [c.chunk_number for c in chunks] == [1, 2, 3]
    assert all(c.total_chunks == 3 for c in chunks)


def test_new_heading_replaces_tags() -> None:
    text = "intro\n\n== Technique ==\n\nT1 and T2\n\n=== Conclusion Notes ===\n\nnormal study"
    chunks = split_into_chunks(text)
    assert chunks[0].tags == ()
    assert chunks[1].tags == ("technique",)
    assert chunks[2].tags == ("conclusion", "notes")


def test_tags_are_lowercased_and_deduplicated() -> None:
    assert heading_tags("Brain MRI brain Contrast contrast") == ("brain", "contrast")


def test_blank_lines_with_whitespace_split_paragraphs() -> None:
    chunks = split_into_chunks("a line\nsecond line\n   \n\t\nnext paragraph")
    assert [c.content for c in chunks] == ["a line\nsecond line", "next paragraph"]


def test_windows_line_endings() -> None:
    chunks = split_into_chunks("one\r\n\r\ntwo")
    assert [c.content for c in chunks] == ["one", "two"]


def test_only_headings_and_blanks_yield_nothing() -> None:
    assert split_into_chunks("== Title ==\n\n\n\n= Other =\n") == []


def test_empty_input() -> None:
    assert split_into_chunks("") == []
