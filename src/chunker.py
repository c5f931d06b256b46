"""
Document Chunker Module

Loads documents from the data folder and splits them into chunks for the
retrieval index.

Chunking Strategy:
- Recursive Character Splitting on paragraph, line and sentence boundaries
- Target size: 500 characters per chunk, 50 characters of overlap
- Chunk IDs: <path relative to the indexed folder>_chunk_<index>
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from langchain_text_splitters import RecursiveCharacterTextSplitter
from langchain_community.document_loaders import (
    PyPDFLoader,
    TextLoader,
    Docx2txtLoader,
)

from config.settings import get_settings, ChunkingConfig

logger = logging.getLogger(__name__)

# Chunks shorter than this carry no useful context
MIN_CHUNK_CHARS = 10


@dataclass
class Chunk:
    """
    A piece of a source document.

    Attributes:
        text: The chunk text
        chunk_id: Unique identifier (<doc_key>_chunk_<index>)
        source: Source file name
        chunk_index: Position of this chunk in the document (0-indexed)
        total_chunks: Total number of chunks from this document
        metadata: File type, path, page number, ...
        embedding: Vector embedding (populated by EmbeddingService)
        doc_key: Document key for the id; the file stem when empty
    """

    text: str
    chunk_id: str
    source: str
    chunk_index: int
    total_chunks: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)
    embedding: Optional[List[float]] = None
    doc_key: str = ""

    def __post_init__(self):
        if not self.chunk_id:
            key = self.doc_key or Path(self.source).stem
            self.chunk_id = f"{key}_chunk_{self.chunk_index}"


class DocumentChunker:
    """
    Handles document loading and chunking.

    Supports:
    - Plain text and text-like data (.txt, .md, .json, .csv, .log, .yml, .yaml)
    - PDF (.pdf)
    - Word documents (.docx)

    Example:
        chunker = DocumentChunker()
        chunks = chunker.process_directory("./data")
    """

    SUPPORTED_EXTENSIONS = {
        ".txt": TextLoader,
        ".md": TextLoader,
        ".json": TextLoader,
        ".csv": TextLoader,
        ".log": TextLoader,
        ".yml": TextLoader,
        ".yaml": TextLoader,
        ".pdf": PyPDFLoader,
        ".docx": Docx2txtLoader,
    }

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        config: Optional[ChunkingConfig] = None,
    ):
        """
        Initialize the DocumentChunker.

        Args:
            chunk_size: Target characters per chunk (default from config)
            chunk_overlap: Overlap between chunks (default from config)
            config: Optional ChunkingConfig instance
        """
        self.config = config or get_settings().chunking

        self.chunk_size = chunk_size or self.config.chunk_size
        self.chunk_overlap = chunk_overlap if chunk_overlap is not None else self.config.chunk_overlap

        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            length_function=len,
            separators=["\n\n", "\n", ". ", "? ", "! ", " ", ""],
            keep_separator=True,
        )

        logger.info(
            f"DocumentChunker initialized: chunk_size={self.chunk_size}, "
            f"overlap={self.chunk_overlap}"
        )

    @classmethod
    def is_supported(cls, file_path: Union[str, Path]) -> bool:
        return Path(file_path).suffix.lower() in cls.SUPPORTED_EXTENSIONS

    def _get_loader(self, file_path: Path):
        """
        Get the document loader for the file type.

        Raises:
            ValueError: If file type is not supported
        """
        extension = file_path.suffix.lower()
        if extension not in self.SUPPORTED_EXTENSIONS:
            raise ValueError(
                f"Unsupported file type: {extension}. "
                f"Supported types: {list(self.SUPPORTED_EXTENSIONS.keys())}"
            )

        loader_class = self.SUPPORTED_EXTENSIONS[extension]
        if loader_class is TextLoader:
            return TextLoader(str(file_path), encoding="utf-8", autodetect_encoding=True)
        return loader_class(str(file_path))

    def _split(
        self, text: str, source: str, doc_key: str, metadata: Dict[str, Any], start: int = 0
    ) -> List[Chunk]:
        chunks = []
        index = start
        for piece in self._splitter.split_text(text):
            piece = piece.strip()
            if len(piece) < MIN_CHUNK_CHARS:
                continue
            chunks.append(
                Chunk(
                    text=piece,
                    chunk_id="",
                    source=source,
                    chunk_index=index,
                    metadata=metadata.copy(),
                    doc_key=doc_key,
                )
            )
            index += 1
        return chunks

    def process_document(
        self, file_path: Union[str, Path], base_dir: Optional[Union[str, Path]] = None
    ) -> List[Chunk]:
        """
        Load one document and split it into chunks.

        Chunk ids use the path relative to `base_dir` (or the file name),
        extension included, so faq.md and docs/faq.txt never share ids.

        Args:
            file_path: Path to the document file
            base_dir: Folder the document was found under

        Returns:
            List of Chunk objects

        Raises:
            FileNotFoundError: If document doesn't exist
            ValueError: If file type is not supported
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"Document not found: {file_path}")

        doc_key = file_path.relative_to(base_dir).as_posix() if base_dir else file_path.name

        logger.info(f"Processing document: {doc_key}")
        documents = self._get_loader(file_path).load()

        all_chunks: List[Chunk] = []
        for doc in documents:
            metadata = {
                "source_file": file_path.name,
                "source_path": str(file_path),
                "file_type": file_path.suffix.lower(),
                "processed_at": datetime.utcnow().isoformat(),
            }
            if "page" in doc.metadata:
                metadata["page_number"] = doc.metadata["page"] + 1
            all_chunks.extend(
                self._split(doc.page_content, file_path.name, doc_key, metadata, start=len(all_chunks))
            )

        for chunk in all_chunks:
            chunk.total_chunks = len(all_chunks)

        logger.info(f"Created {len(all_chunks)} chunks from {file_path.name}")
        return all_chunks

    def process_directory(self, directory_path: Union[str, Path], recursive: bool = True) -> List[Chunk]:
        """
        Process every supported document in a directory.

        Files that fail to load are logged and skipped.
        """
        directory_path = Path(directory_path)
        if not directory_path.exists():
            raise FileNotFoundError(f"Directory not found: {directory_path}")
        if not directory_path.is_dir():
            raise ValueError(f"Not a directory: {directory_path}")

        pattern = "**/*" if recursive else "*"
        all_chunks: List[Chunk] = []
        for file_path in sorted(directory_path.glob(pattern)):
            if not file_path.is_file() or not self.is_supported(file_path):
                continue
            try:
                all_chunks.extend(self.process_document(file_path, base_dir=directory_path))
            except Exception as e:
                logger.error(f"Error processing {file_path}: {e}")

        logger.info(f"Processed directory {directory_path}: {len(all_chunks)} total chunks")
        return all_chunks
