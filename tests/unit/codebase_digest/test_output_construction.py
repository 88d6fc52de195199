from __future__ import annotations

import csv
import gzip
import io
import json
import xml.etree.ElementTree as ET
from datetime import UTC, datetime

import pytest

from codebase_digest.config import FileRecord, OutputFormat
from codebase_digest.exceptions import UnknownOutputFormatError
from codebase_digest.output_construction import (
    FORMATTERS,
    OUTPUT_TRUNCATED_MARKER,
    cdata,
    compress_output,
    digest_statistics,
    format_csv,
    format_html,
    format_json,
    format_markdown,
    format_output,
    format_text,
    format_tree,
    format_tree_size,
    format_xml,
    iso_timestamp,
    limit_output_size,
    resolve_output_format,
)
from codebase_digest.settings import Settings

MODIFIED = datetime(2024, 5, 1, 12, 30, tzinfo=UTC)


@pytest.fixture
def recs() -> list[FileRecord]:
    return [
        FileRecord(path="README.md", size=4, modified=MODIFIED, extension="md", content="# Hi"),
        FileRecord(path="src/a.js", size=15, modified=MODIFIED, extension="js", content="console.log(1);"),
    ]


@pytest.mark.unit
def test_every_output_format_has_a_formatter() -> None:
    assert set(FORMATTERS) == set(OutputFormat)


@pytest.mark.unit
@pytest.mark.parametrize("value", ["json", "JSON", " Markdown "])
def test_resolve_output_format_is_case_insensitive(value: str) -> None:
    assert resolve_output_format(value) in {OutputFormat.JSON, OutputFormat.MARKDOWN}


@pytest.mark.unit
def test_resolve_output_format_rejects_unknown() -> None:
    with pytest.raises(UnknownOutputFormatError, match="Invalid output format: pdf") as exc_info:
        resolve_output_format("pdf")

    assert exc_info.value.value == "pdf"


@pytest.mark.unit
def test_format_output_falls_back_to_text(recs: list[FileRecord]) -> None:
    settings = Settings(output_format="pdf")

    assert format_output(recs, settings) == format_text(recs, settings)


@pytest.mark.unit
def test_iso_timestamp_uses_z_suffix() -> None:
    assert iso_timestamp(MODIFIED) == "2024-05-01T12:30:00.000Z"


@pytest.mark.unit
def test_text_output_with_headers_and_separators(recs: list[FileRecord]) -> None:
    rule = "=" * 48

    out = format_text(recs, Settings())

    assert out == f"File: README.md\n{rule}\n# Hi\n\n{rule}\n\nFile: src/a.js\n{rule}\nconsole.log(1);\n\n"


@pytest.mark.unit
def test_text_output_plain_with_line_numbers(recs: list[FileRecord]) -> None:
    settings = Settings(include_file_header=False, include_file_separator=False, include_line_numbers=True)

    out = format_text(recs[:1], settings)

    assert out == "     1: # Hi\n\n"


@pytest.mark.unit
def test_text_output_header_metadata() -> None:
    rec = FileRecord(path="a.py", size=2048, modified=MODIFIED, hash="abc", mime_type="text/x-python", content="x")
    settings = Settings(
        include_byte_size=True,
        include_last_modified=True,
        include_file_hash=True,
        hash_algorithm="sha256",
        include_mime_type=True,
    )

    out = format_text([rec], settings)

    assert "Size: 2 KB\n" in out
    assert "Modified: 2024-05-01T12:30:00.000Z\n" in out
    assert "SHA256: abc\n" in out
    assert "MIME Type: text/x-python\n" in out


@pytest.mark.unit
def test_text_output_for_error_records() -> None:
    rec = FileRecord(path="bad.txt", error="boom", content="[Error reading file: boom]")

    assert "[Error: boom]\n\n" in format_text([rec], Settings())


@pytest.mark.unit
def test_empty_outputs() -> None:
    settings = Settings()

    assert format_text([], settings) == ""
    assert json.loads(format_json([], settings)) == []
    assert format_markdown([], settings) == "# Code Digest\n\nNo files processed.\n"
    assert format_tree([], settings) == "Empty directory\n"
    assert format_csv([], settings) == ""
    assert "No files processed." in format_html([], settings)


@pytest.mark.unit
def test_markdown_output(recs: list[FileRecord]) -> None:
    out = format_markdown(recs, Settings())

    assert out.startswith("# Code Digest\n\n")
    assert "## README.md\n\n```markdown\n# Hi\n```\n\n" in out
    assert "## src/a.js\n\n```javascript\nconsole.log(1);\n```\n\n" in out


@pytest.mark.unit
def test_markdown_metadata_and_statistics(recs: list[FileRecord]) -> None:
    out = format_markdown(recs, Settings(include_byte_size=True, code_statistics=True))

    assert "## Summary\n\n- Total files: 2\n- Total size: 19 Bytes\n" in out
    assert "  - md: 1 files\n" in out
    assert "<details>\n<summary>File metadata</summary>\n\n- Size: 4 Bytes\n\n</details>\n\n" in out


@pytest.mark.unit
def test_json_output_metadata_and_exclude_content(recs: list[FileRecord]) -> None:
    data = json.loads(format_json(recs, Settings(include_metadata=True, exclude_content=True)))

    assert data[1] == {
        "path": "src/a.js",
        "size": 15,
        "modified": "2024-05-01T12:30:00.000Z",
        "extension": "js",
        "language": "javascript",
    }


@pytest.mark.unit
def test_json_output_with_statistics(recs: list[FileRecord]) -> None:
    data = json.loads(format_json(recs, Settings(code_statistics=True)))

    assert data["metadata"] == {
        "totalFiles": 2,
        "totalSize": 19,
        "fileTypes": {"md": 1, "js": 1},
        "languages": {"markdown": 1, "javascript": 1},
    }
    assert [f["path"] for f in data["files"]] == ["README.md", "src/a.js"]


@pytest.mark.unit
def test_digest_statistics_orders_by_count() -> None:
    stats = digest_statistics(
        [
            FileRecord(path="a.txt", extension="txt"),
            FileRecord(path="b.py", extension="py"),
            FileRecord(path="c.py", extension="py"),
            FileRecord(path="Makefile"),
        ],
    )

    assert list(stats["fileTypes"].items()) == [("py", 2), ("txt", 1), ("unknown", 1)]


@pytest.mark.unit
def test_tree_output(recs: list[FileRecord]) -> None:
    out = format_tree(recs, Settings(include_byte_size=True))

    assert out == "├── src/\n│   └── a.js (15B)\n└── README.md (4B)\n"


@pytest.mark.unit
@pytest.mark.parametrize(("size", "expected"), [(0, "0B"), (1023, "1023B"), (1536, "1.5KB"), (3 * 1024**2, "3.0MB")])
def test_format_tree_size(size: int, expected: str) -> None:
    assert format_tree_size(size) == expected


@pytest.mark.unit
def test_csv_output_quotes_when_needed() -> None:
    recs = [
        FileRecord(path="a.txt", size=3, content="abc"),
        FileRecord(path="b,c.txt", size=9, content='say "hi"\nbye'),
    ]

    out = format_csv(recs, Settings(include_byte_size=True))

    assert out.split("\n", 1)[0] == "path,size,content"
    assert out.startswith('path,size,content\na.txt,3,abc\n"b,c.txt",9,"say ""hi""\nbye"\n')
    assert list(csv.reader(io.StringIO(out)))[2] == ["b,c.txt", "9", 'say "hi"\nbye']


@pytest.mark.unit
def test_html_output_escapes_content() -> None:
    rec = FileRecord(path="<x>.html", content="<b>&</b>")

    out = format_html([rec], Settings())

    assert out.startswith("<!DOCTYPE html>")
    assert "<h2>&lt;x&gt;.html</h2>" in out
    assert "<pre class=\"file-content\"><code>&lt;b&gt;&amp;&lt;/b&gt;</code></pre>" in out
    assert out.endswith("</body>\n</html>")


@pytest.mark.unit
def test_html_output_line_numbers() -> None:
    rec = FileRecord(path="a.txt", content="<a>\nb")

    out = format_html([rec], Settings(include_line_numbers=True))

    assert '<span class="line-numbers">     1: </span>&lt;a&gt;\n<span class="line-numbers">     2: </span>b' in out


@pytest.mark.unit
def test_xml_output_is_well_formed(recs: list[FileRecord]) -> None:
    tricky = FileRecord(path='q"uote.txt', content="a ]]> b <c>")
    broken = FileRecord(path="bad.txt", error="boom & bust", content="[Error reading file: boom & bust]")

    out = format_xml([*recs, tricky, broken], Settings(include_byte_size=True, code_statistics=True))
    root = ET.fromstring(out.encode("utf-8"))  # noqa: S314

    assert root.tag == "codeDigest"
    assert root.find("metadata/totalFiles").text == "4"  # type: ignore[union-attr]
    files = root.findall("file")
    assert [f.get("path") for f in files] == ["README.md", "src/a.js", 'q"uote.txt', "bad.txt"]
    assert files[0].get("size") == "4"
    assert files[2].findtext("content") == "a ]]> b <c>"
    assert files[3].findtext("error") == "boom & bust"


@pytest.mark.unit
def test_cdata_splits_terminator() -> None:
    assert cdata("x]]>y") == "<![CDATA[x]]]]><![CDATA[>y]]>"


@pytest.mark.unit
def test_compress_output_round_trips() -> None:
    assert gzip.decompress(compress_output("héllo")).decode("utf-8") == "héllo"


@pytest.mark.unit
def test_limit_output_size() -> None:
    assert limit_output_size("abcdef", 0) == "abcdef"
    assert limit_output_size("abcdef", 6) == "abcdef"
    assert limit_output_size("abcdef", 3) == "abc" + OUTPUT_TRUNCATED_MARKER


@pytest.mark.unit
def test_limit_output_size_counts_encoded_bytes() -> None:
    # "é" is 2 bytes in utf-8, so 4 characters already weigh 8 bytes
    assert limit_output_size("éééé", 8) == "éééé"
    assert limit_output_size("éééé", 5) == "éé" + OUTPUT_TRUNCATED_MARKER
    assert limit_output_size("éééé", 3, "latin-1") == "ééé" + OUTPUT_TRUNCATED_MARKER
