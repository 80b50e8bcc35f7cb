import pytest

from fileproc.processor.mime_types import (
    DEFAULT_MIME_TYPE,
    MIME_TYPES,
    detect_mime_type,
    file_extension,
)


class TestDetectMimeType:
    @pytest.mark.parametrize(
        ("filename", "expected"),
        [
            ("scan.pdf", "application/pdf"),
            ("photo.jpeg", "image/jpeg"),
            ("photo.jpg", "image/jpeg"),
            ("table.csv", "text/csv"),
            ("archive.tar.gz", "application/gzip"),
        ],
    )
    def test_known_extensions(self, filename: str, expected: str) -> None:
        assert detect_mime_type(filename) == expected

    def test_extension_lookup_is_case_insensitive(self) -> None:
        assert detect_mime_type("SCAN.PDF") == "application/pdf"

    def test_unknown_extension_falls_back(self) -> None:
        assert detect_mime_type("data.xyz123") == DEFAULT_MIME_TYPE

    def test_no_extension_falls_back(self) -> None:
        assert detect_mime_type("Makefile") == "application/octet-stream"

    def test_table_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            MIME_TYPES[".exe"] = "application/x-msdownload"  # type: ignore[index]


class TestFileExtension:
    def test_keeps_original_case(self) -> None:
        assert file_extension("Report.PDF") == ".PDF"

    def test_empty_without_extension(self) -> None:
        assert file_extension("README") == ""
