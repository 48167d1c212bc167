# Copyright 2026 Pramod Kumar Voola
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# -----------------------------------------------------------------------------
# COMPRESSION - PRECOMPUTED SIBLINGS & STREAMED GZIP
# -----------------------------------------------------------------------------
# Responsibility: Decide which artifacts get a gzip sibling (<path>.gz) and
# stream gzip for artifacts served without one.
#
# A sibling is written only when it saves enough:
#     compressed_size <= compression_threshold * original_size
# -----------------------------------------------------------------------------

import gzip
import zlib
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from beni.domain.models import BuildConfiguration

GZIP_SUFFIX = ".gz"
STREAM_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class CompressedArtifact:
    """One precomputed sibling written by precompress_tree()."""

    path: Path
    original_size: int
    compressed_size: int

    @property
    def saved(self) -> int:
        return self.original_size - self.compressed_size


def is_compressible(path: Path | str, config: BuildConfiguration) -> bool:
    """True when the path's extension is listed in compressible_extensions."""
    suffix = Path(path).suffix.lower()
    return suffix in {ext.lower() for ext in config.cleanup.compressible_extensions}


def should_precompress(path: Path | str, config: BuildConfiguration) -> bool:
    """Both the global compress switch and the extension list must allow it."""
    return config.compress and is_compressible(path, config)


def meets_threshold(original_size: int, compressed_size: int, threshold: float) -> bool:
    """True when the compressed form is small enough to be worth keeping."""
    return original_size > 0 and compressed_size <= threshold * original_size


def gzip_bytes(data: bytes) -> bytes:
    """Deterministic gzip (mtime fixed at 0, maximum level)."""
    return gzip.compress(data, compresslevel=9, mtime=0)


def precompress_tree(output_dir: Path, config: BuildConfiguration) -> list[CompressedArtifact]:
    """
    Write <path>.gz next to every eligible artifact under output_dir.

    Returns:
        The siblings that were written, in sorted path order.
    """
    written: list[CompressedArtifact] = []
    threshold = config.cleanup.compression_threshold
    for path in sorted(output_dir.rglob("*")):
        if not path.is_file() or path.suffix == GZIP_SUFFIX:
            continue
        if not should_precompress(path, config):
            continue
        data = path.read_bytes()
        compressed = gzip_bytes(data)
        if not meets_threshold(len(data), len(compressed), threshold):
            continue
        target = path.with_name(path.name + GZIP_SUFFIX)
        target.write_bytes(compressed)
        written.append(CompressedArtifact(target, len(data), len(compressed)))
    return written


def stream_gzip(path: Path, chunk_size: int = STREAM_CHUNK_SIZE) -> Iterator[bytes]:
    """Yield the gzip encoding of a file chunk by chunk."""
    compressor = zlib.compressobj(6, zlib.DEFLATED, 31)
    with open(path, "rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            data = compressor.compress(chunk)
            if data:
                yield data
    yield compressor.flush()
