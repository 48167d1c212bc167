"""
Tests for precompression and streamed gzip.
"""

import gzip
import os

import pytest

from beni.core.compression import (
    gzip_bytes,
    is_compressible,
    meets_threshold,
    precompress_tree,
    should_precompress,
    stream_gzip,
)
from beni.domain.models import BuildConfiguration


@pytest.fixture
def dist(tmp_path):
    out = tmp_path / "dist"
    (out / "js").mkdir(parents=True)
    (out / "index.html").write_text("<p>hello</p>" * 200)
    (out / "js" / "app.js").write_text("var a = 1;\n" * 300)
    (out / "noise.txt").write_bytes(os.urandom(4096))
    (out / "logo.png").write_bytes(b"\x89PNG" + b"\x00" * 2000)
    (out / "tiny.css").write_text("a{}")
    return out


class TestThreshold:
    """Tests for the sibling-retention rule."""

    def test_ratio_above_threshold_rejected(self):
        assert not meets_threshold(1000, 820, 0.8)

    def test_ratio_below_threshold_kept(self):
        assert meets_threshold(1000, 750, 0.8)

    def test_exact_threshold_kept(self):
        assert meets_threshold(1000, 800, 0.8)

    def test_empty_file_never_kept(self):
        assert not meets_threshold(0, 20, 0.8)


class TestPrecompressTree:
    """Tests for precompress_tree()."""

    def test_writes_only_worthwhile_siblings(self, dist, tmp_path):
        config = BuildConfiguration(root=tmp_path)
        written = precompress_tree(dist, config)

        names = sorted(p.path.relative_to(dist).as_posix() for p in written)
        assert names == ["index.html.gz", "js/app.js.gz"]
        assert not (dist / "noise.txt.gz").exists()
        assert not (dist / "logo.png.gz").exists()
        # gzip of 3 bytes is larger than the original
        assert not (dist / "tiny.css.gz").exists()

    def test_sibling_decompresses_to_original(self, dist, tmp_path):
        precompress_tree(dist, BuildConfiguration(root=tmp_path))
        original = (dist / "index.html").read_bytes()
        assert gzip.decompress((dist / "index.html.gz").read_bytes()) == original

    def test_reports_sizes(self, dist, tmp_path):
        written = precompress_tree(dist, BuildConfiguration(root=tmp_path))
        for artifact in written:
            assert artifact.compressed_size <= 0.8 * artifact.original_size
            assert artifact.saved == artifact.original_size - artifact.compressed_size

    def test_compress_switch_off(self, dist, tmp_path):
        config = BuildConfiguration(root=tmp_path, compress=False)
        assert precompress_tree(dist, config) == []
        assert not list(dist.rglob("*.gz"))

    def test_extension_must_be_listed(self, dist, tmp_path):
        config = BuildConfiguration(
            root=tmp_path, cleanup={"compressible_extensions": [".js"]}
        )
        written = precompress_tree(dist, config)
        assert [p.path.name for p in written] == ["app.js.gz"]

    def test_deterministic_output(self):
        assert gzip_bytes(b"abc" * 100) == gzip_bytes(b"abc" * 100)


class TestPredicates:
    def test_is_compressible_case_insensitive(self, tmp_path):
        config = BuildConfiguration(root=tmp_path)
        assert is_compressible("INDEX.HTML", config)
        assert not is_compressible("photo.jpg", config)

    def test_should_precompress_needs_switch(self, tmp_path):
        assert should_precompress("a.js", BuildConfiguration(root=tmp_path))
        assert not should_precompress("a.js", BuildConfiguration(root=tmp_path, compress=False))


class TestStreamGzip:
    def test_stream_is_valid_gzip(self, tmp_path):
        path = tmp_path / "big.js"
        data = b"function x() { return 42; }\n" * 5000
        path.write_bytes(data)

        chunks = list(stream_gzip(path, chunk_size=1024))
        assert gzip.decompress(b"".join(chunks)) == data

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.css"
        path.write_bytes(b"")
        assert gzip.decompress(b"".join(stream_gzip(path))) == b""
