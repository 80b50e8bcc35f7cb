import gzip
import zlib
from pathlib import Path
from unittest.mock import patch

import pytest

from fileproc.processor.compression import compress, compressed_path_for
from fileproc.processor.exceptions import CompressionError, StorageIOError


class TestCompressedPathFor:
    def test_appends_gz_suffix(self) -> None:
        assert compressed_path_for(Path("/files/10/report.pdf")) == Path("/files/10/report.pdf.gz")


class TestCompress:
    def test_writes_gzip_next_to_original(self, tmp_path: Path, sample_bytes: bytes) -> None:
        source = tmp_path / "report.txt"
        source.write_bytes(sample_bytes)

        target = compress(source, attempt_tag="job1")

        assert target == tmp_path / "report.txt.gz"
        assert gzip.decompress(target.read_bytes()) == sample_bytes

    def test_leaves_no_staging_files(self, tmp_path: Path, sample_bytes: bytes) -> None:
        source = tmp_path / "report.txt"
        source.write_bytes(sample_bytes)

        compress(source, attempt_tag="job1")

        assert sorted(p.name for p in tmp_path.iterdir()) == ["report.txt", "report.txt.gz"]

    def test_output_is_deterministic(self, tmp_path: Path, random_bytes: bytes) -> None:
        source = tmp_path / "blob.bin"
        source.write_bytes(random_bytes)

        first = compress(source, attempt_tag="a").read_bytes()
        second = compress(source, attempt_tag="b").read_bytes()

        assert first == second

    def test_empty_file_has_gzip_overhead_only(self, tmp_path: Path) -> None:
        source = tmp_path / "empty.txt"
        source.write_bytes(b"")

        target = compress(source, attempt_tag="job1")

        assert target.stat().st_size == 20

    def test_missing_source_raises_storage_error(self, tmp_path: Path) -> None:
        with pytest.raises(StorageIOError):
            compress(tmp_path / "gone.txt", attempt_tag="job1")

    def test_compressor_failure_raises_compression_error(
        self, tmp_path: Path, sample_bytes: bytes
    ) -> None:
        source = tmp_path / "report.txt"
        source.write_bytes(sample_bytes)

        with (
            patch(
                "fileproc.processor.compression.shutil.copyfileobj",
                side_effect=zlib.error("bad stream"),
            ),
            pytest.raises(CompressionError, match="bad stream"),
        ):
            compress(source, attempt_tag="job1")

        assert not (tmp_path / "report.txt.gz").exists()
        assert not (tmp_path / "report.txt.gz.job1.tmp").exists()
