"""
Tests for DocumentChunker module.

Run with: pytest tests/test_chunker.py -v
"""

import pytest

from config.settings import ChunkingConfig
from src.chunker import DocumentChunker, Chunk


class TestChunk:
    """Tests for Chunk dataclass."""

    def test_chunk_creation(self):
        """Test basic chunk creation."""
        chunk = Chunk(
            text="This is a test chunk.",
            chunk_id="faq_chunk_0",
            source="faq.txt",
            chunk_index=0,
            total_chunks=5,
        )

        assert chunk.text == "This is a test chunk."
        assert chunk.source == "faq.txt"
        assert chunk.total_chunks == 5
        assert chunk.embedding is None

    def test_chunk_auto_id(self):
        """Missing ids become <stem>_chunk_<index>."""
        chunk = Chunk(
            text="Test content for ID generation.",
            chunk_id="",
            source="document.pdf",
            chunk_index=3,
        )
        assert chunk.chunk_id == "document_chunk_3"

    def test_explicit_id_kept(self):
        """A given id is not overwritten."""
        chunk = Chunk(text="Test text", chunk_id="custom", source="source.txt", chunk_index=4)
        assert chunk.chunk_id == "custom"


class TestDocumentChunker:
    """Tests for DocumentChunker class."""

    @pytest.fixture
    def chunker(self):
        """Create a chunker with small chunk size for testing."""
        return DocumentChunker(chunk_size=100, chunk_overlap=20, config=ChunkingConfig())

    @pytest.fixture
    def sample_text_file(self, tmp_path):
        """Create a temporary text file for testing."""
        content = """# Introduction

This is the first paragraph of the document. It contains some text that will be chunked.

## Section 1

This is the content of section 1. It has multiple sentences. Each sentence provides information.

## Conclusion

This is the conclusion of the document. Final thoughts are written here.
"""
        file_path = tmp_path / "test_document.txt"
        file_path.write_text(content, encoding="utf-8")
        return file_path

    def test_chunker_initialization(self, chunker):
        """Test chunker initialization."""
        assert chunker.chunk_size == 100
        assert chunker.chunk_overlap == 20

    def test_defaults_from_config(self):
        """Sizes fall back to the chunking config."""
        chunker = DocumentChunker(config=ChunkingConfig(chunk_size=300, chunk_overlap=0))
        assert chunker.chunk_size == 300
        assert chunker.chunk_overlap == 0

    def test_process_text_file(self, chunker, sample_text_file):
        """Test processing a text file."""
        chunks = chunker.process_document(sample_text_file)

        assert len(chunks) > 1
        assert all(c.source == "test_document.txt" for c in chunks)
        assert all(c.metadata["file_type"] == ".txt" for c in chunks)

    def test_chunk_ids_and_indices(self, chunker, sample_text_file):
        """Chunks are numbered in order and named after the file."""
        chunks = chunker.process_document(sample_text_file)

        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
        assert [c.chunk_id for c in chunks] == [f"test_document.txt_chunk_{i}" for i in range(len(chunks))]
        assert all(c.total_chunks == len(chunks) for c in chunks)

    def test_text_like_formats_supported(self, chunker, tmp_path):
        """JSON and other text-like files load as plain text."""
        file_path = tmp_path / "faq.json"
        file_path.write_text('{"question": "How do refunds work?", "answer": "Within 14 days."}', encoding="utf-8")

        chunks = chunker.process_document(file_path)

        assert chunks
        assert "refunds" in chunks[0].text

    @pytest.mark.parametrize("name,supported", [
        ("notes.md", True),
        ("data.CSV", True),
        ("config.yaml", True),
        ("report.pdf", True),
        ("letter.docx", True),
        ("image.png", False),
        ("archive.zip", False),
    ])
    def test_is_supported(self, name, supported):
        """Only known extensions are indexed."""
        assert DocumentChunker.is_supported(name) is supported

    def test_process_directory(self, chunker, tmp_path):
        """Directories are walked recursively; unsupported files are skipped."""
        (tmp_path / "a.txt").write_text("Alpha document with enough text to chunk.", encoding="utf-8")
        nested = tmp_path / "nested"
        nested.mkdir()
        (nested / "b.md").write_text("Beta document with enough text to chunk.", encoding="utf-8")
        (tmp_path / "skip.bin").write_bytes(b"\x00\x01")

        chunks = chunker.process_directory(tmp_path)

        assert sorted({c.source for c in chunks}) == ["a.txt", "b.md"]

    def test_same_stem_files_get_distinct_ids(self, chunker, tmp_path):
        """faq.md, faq.txt and nested/faq.txt never share chunk ids."""
        (tmp_path / "faq.md").write_text("Markdown answers about refunds.", encoding="utf-8")
        (tmp_path / "faq.txt").write_text("Plain text answers about shipping.", encoding="utf-8")
        nested = tmp_path / "nested"
        nested.mkdir()
        (nested / "faq.txt").write_text("Nested answers about passwords.", encoding="utf-8")

        chunks = chunker.process_directory(tmp_path)

        assert sorted(c.chunk_id for c in chunks) == [
            "faq.md_chunk_0",
            "faq.txt_chunk_0",
            "nested/faq.txt_chunk_0",
        ]
        assert {c.source for c in chunks} == {"faq.md", "faq.txt"}

    def test_process_directory_non_recursive(self, chunker, tmp_path):
        """recursive=False stays at the top level."""
        (tmp_path / "a.txt").write_text("Alpha document with enough text to chunk.", encoding="utf-8")
        nested = tmp_path / "nested"
        nested.mkdir()
        (nested / "b.txt").write_text("Beta document with enough text to chunk.", encoding="utf-8")

        chunks = chunker.process_directory(tmp_path, recursive=False)

        assert {c.source for c in chunks} == {"a.txt"}

    def test_process_directory_missing(self, chunker, tmp_path):
        """A missing directory is an error."""
        with pytest.raises(FileNotFoundError):
            chunker.process_directory(tmp_path / "nope")

    def test_unsupported_file_type(self, chunker, tmp_path):
        """Test handling of unsupported file types."""
        file_path = tmp_path / "test.xyz"
        file_path.write_text("content")

        with pytest.raises(ValueError, match="Unsupported file type"):
            chunker.process_document(file_path)

    def test_file_not_found(self, chunker):
        """Test handling of missing files."""
        with pytest.raises(FileNotFoundError):
            chunker.process_document("/nonexistent/file.txt")

    def test_short_chunks_filtered(self, tmp_path):
        """Chunks shorter than ten characters are dropped."""
        file_path = tmp_path / "short.txt"
        file_path.write_text("Short\n\nA longer line.\n\nTiny", encoding="utf-8")
        chunker = DocumentChunker(chunk_size=12, chunk_overlap=0, config=ChunkingConfig())
        chunks = chunker.process_document(file_path)

        assert all(len(c.text) >= 10 for c in chunks)
        assert "Tiny" not in [c.text for c in chunks]
