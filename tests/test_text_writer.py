from pathlib import Path

from novelharvest.core.models import Catalogue, Chapter
from novelharvest.workflows.harvest import HarvestResult
from novelharvest.workflows.text_writer import render_text, summarize, write_text


def _catalogue() -> Catalogue:
    done = Chapter(name="Chapter 1", url="http://a.test/1")
    done.mark_fetched("    It begins.\n")
    missing = Chapter(name="Chapter 2", url="http://a.test/2")
    return Catalogue(chapters=[done, missing], source="http://a.test/")


def test_unfetched_chapter_renders_placeholder() -> None:
    text = render_text(_catalogue(), title="Book", author="Someone")

    assert text == (
        "Name:\tBook\n"
        "Author:\tSomeone\n"
        "\nChapter 1\n    It begins.\n"
        "\nChapter 2\n    Content unavailable.\n"
    )


def test_write_text_appends_suffix(tmp_path: Path) -> None:
    path = write_text(_catalogue(), tmp_path / "out" / "book")

    assert path == tmp_path / "out" / "book.txt"
    assert "Chapter 2" in path.read_text(encoding="utf-8")


def test_write_text_keeps_existing_suffix(tmp_path: Path) -> None:
    path = write_text(_catalogue(), tmp_path / "book.txt")

    assert path == tmp_path / "book.txt"


def test_summarize_counts_chapters() -> None:
    result = HarvestResult(
        catalogues=[_catalogue()],
        source_errors={"http://broken.test/": "no chapter list found"},
        turns=2,
        elapsed=1.23456,
    )

    summary = summarize(result)

    assert summary["catalogues"] == [
        {"source": "http://a.test/", "counts": {"chapters": 2, "fetched": 1, "missing": 1}}
    ]
    assert summary["source_errors"] == [{"source": "http://broken.test/", "error": "no chapter list found"}]
    assert summary["turns"] == 2
    assert summary["elapsed"] == 1.235
