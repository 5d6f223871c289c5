# document_groups.py — Group document rows into multi-format documents
"""
Rows sharing a file name stem ("Report.pdf", "Report.docx") are shown as one
document with several format variants. The grouping is derived on every
read; nothing about it is stored.
"""

from typing import Optional, List, Dict, Iterable, Tuple

from pydantic import BaseModel

from models import Document

# Known formats, best first
FORMAT_PRIORITY = {
    "pdf": 0,
    "docx": 1,
    "doc": 2,
    "md": 3,
    "html": 4,
    "txt": 5,
}
UNKNOWN_FORMAT_RANK = len(FORMAT_PRIORITY)

FORMAT_LABELS = {
    "pdf": "PDF",
    "docx": "Word",
    "doc": "Word",
    "md": "Markdown",
    "html": "HTML",
    "txt": "Text",
}

FORMAT_MIME_TYPES = {
    "pdf": "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "doc": "application/msword",
    "md": "text/markdown",
    "html": "text/html",
    "txt": "text/plain",
    "csv": "text/csv",
    "json": "application/json",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "mp4": "video/mp4",
    "zip": "application/zip",
}


class DocumentFormat(BaseModel):
    extension: Optional[str] = None
    label: str
    rank: int
    document: Document


class DocumentGroup(BaseModel):
    key: str
    name: str
    formats: List[DocumentFormat]

    @property
    def best(self) -> Document:
        return self.formats[0].document


# ============================================================
# EXTENSIONS & RANKING
# ============================================================

def split_extension(file_name: str) -> Tuple[str, Optional[str]]:
    """(stem, known extension). Unknown suffixes are left on the stem."""
    lowered = file_name.lower()
    for ext in FORMAT_PRIORITY:
        suffix = f".{ext}"
        if lowered.endswith(suffix) and len(file_name) > len(suffix):
            return file_name[: -len(suffix)], ext
    return file_name, None


def _raw_extension(file_name: str) -> Optional[str]:
    if "." not in file_name.strip("."):
        return None
    return file_name.rsplit(".", 1)[-1].lower()


def format_rank(extension: Optional[str]) -> int:
    if extension is None:
        return UNKNOWN_FORMAT_RANK
    return FORMAT_PRIORITY.get(extension.lower(), UNKNOWN_FORMAT_RANK)


def _sort_key(fmt: DocumentFormat) -> Tuple[int, str, str, str]:
    return (fmt.rank, fmt.extension or "", fmt.document.file_name, fmt.document.id)


def _format_of(doc: Document) -> DocumentFormat:
    _, known = split_extension(doc.file_name)
    extension = known or _raw_extension(doc.file_name)
    return DocumentFormat(
        extension=extension,
        label=FORMAT_LABELS.get(extension, (extension or "file").upper()),
        rank=format_rank(extension),
        document=doc,
    )


def sort_formats(docs: Iterable[Document]) -> List[DocumentFormat]:
    return sorted((_format_of(d) for d in docs), key=_sort_key)


def best_format(docs: Iterable[Document]) -> Optional[Document]:
    formats = sort_formats(docs)
    return formats[0].document if formats else None


# ============================================================
# GROUPING
# ============================================================

def group_documents(docs: Iterable[Document]) -> List[DocumentGroup]:
    """Group rows by case-folded stem. Groups keep first-seen order."""
    buckets: Dict[str, List[Document]] = {}
    for doc in docs:
        stem, _ = split_extension(doc.file_name)
        buckets.setdefault(stem.strip().casefold(), []).append(doc)

    groups = []
    for key, members in buckets.items():
        formats = sort_formats(members)
        stem, _ = split_extension(formats[0].document.file_name)
        groups.append(DocumentGroup(key=key, name=stem, formats=formats))
    return groups


def flatten_groups(groups: Iterable[DocumentGroup]) -> List[Document]:
    return [fmt.document for group in groups for fmt in group.formats]


# ============================================================
# DISPLAY HELPERS
# ============================================================

def format_file_size(size: Optional[int]) -> str:
    if not size:
        return "Unknown"
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def file_kind(mime_type: Optional[str]) -> str:
    if not mime_type:
        return "file"
    if mime_type.startswith("image/"):
        return "image"
    if mime_type.startswith("video/"):
        return "video"
    return "document"


def guess_mime_type(file_name: str) -> str:
    return FORMAT_MIME_TYPES.get(_raw_extension(file_name) or "", "application/octet-stream")
