# app/rag/ingest.py
from __future__ import annotations

import argparse
import json
import re
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import ValidationError

from app.config import settings
from app.rag.types import KB_ID_PREFIX, SourceDocument
from app.utils.logging import setup_logging

log = setup_logging()

KB_EXTENSIONS = (".md", ".txt", ".pdf")


def load_text_file(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="ignore")

def iter_pdf_pages(path: Path) -> Iterator[Tuple[int, str]]:
    from pypdf import PdfReader
    reader = PdfReader(str(path))
    for i, page in enumerate(reader.pages, start=1):
        text = page.extract_text() or ""

        text = (
            text.replace("\xa0", " ")
                .replace("\N{NARROW NO-BREAK SPACE}", " ")
                .replace("\x00", "")
        ).strip()
        yield i, text

def iter_documents(root: Path) -> Iterator[Tuple[Path, str]]:
    """Yield ``(path, text)`` for every knowledge-base file under ``root``.

    PDF pages are joined with blank lines so each page stays its own paragraph.
    """
    for p in sorted(root.rglob("*")):
        if not p.is_file():
            continue

        ext = p.suffix.lower()

        if ext == ".pdf":
            pages = [text for _, text in iter_pdf_pages(p) if text]
            yield p, "\n\n".join(pages)

        elif ext in (".txt", ".md"):
            yield p, load_text_file(p)

        else:
            continue


def load_sources(path: Path) -> List[SourceDocument]:
    """Read ``sources.json``; missing or broken files give an empty list."""
    if not path.exists():
        log.warning("SOURCES missing | path=%s", path)
        return []

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        log.warning("SOURCES unreadable | path=%s | err=%s", path, f"{type(e).__name__}: {e}")
        return []

    if not isinstance(raw, list):
        log.warning("SOURCES not a list | path=%s", path)
        return []

    docs: List[SourceDocument] = []
    for i, row in enumerate(raw):
        if not isinstance(row, dict):
            log.warning("SOURCES skip record | index=%s | reason=not_an_object", i)
            continue
        try:
            docs.append(SourceDocument.model_validate(row))
        except ValidationError as e:
            log.warning("SOURCES skip record | index=%s | errors=%s", i, e.error_count())
    return docs


def parse_frontmatter(raw: str) -> Tuple[Dict[str, str], str]:
    if not raw.startswith("---"):
        return {}, raw
    end = raw.find("\n---", 3)
    if end == -1:
        return {}, raw

    block = raw[3:end].strip()
    body = raw[end + 4:].strip()

    fm: Dict[str, str] = {}
    for line in block.split("\n"):
        key, sep, value = line.partition(":")
        if not key.strip() or not sep:
            continue
        v = value.strip()
        if len(v) >= 2 and v.startswith('"') and v.endswith('"'):
            v = v[1:-1]
        fm[key.strip()] = v
    return fm, body


_H1 = re.compile(r"^#\s+(.+)$", re.MULTILINE)


def extract_title(body: str) -> Tuple[Optional[str], str]:
    m = _H1.search(body)
    if not m:
        return None, body
    title = m.group(1).strip()
    cleaned = (body[: m.start()] + body[m.end():]).strip()
    return title, cleaned


def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


def kb_document(path: Path, kb_root: Path, text: str, *, base_url: str) -> SourceDocument:
    fm, body = parse_frontmatter(text)
    h1, cleaned = extract_title(body)
    slug = slugify(path.relative_to(kb_root).as_posix())

    tags_raw = fm.get("tags")
    tags = [t.strip() for t in tags_raw.split(",") if t.strip()] if tags_raw else None

    return SourceDocument(
        id=f"{KB_ID_PREFIX}{slug}",
        title=fm.get("title") or h1 or path.stem,
        url=fm.get("url") or fm.get("source") or f"{base_url.rstrip('/')}/{slug}",
        content=cleaned.strip(),
        tags=tags,
    )


def ingest_kb(kb_path: Path, sources_path: Path, *, base_url: str | None = None) -> int:
    """Merge knowledge-base files into ``sources.json``.

    Earlier ``kb-`` records are replaced; every other record is preserved.
    Returns the number of KB documents written.
    """
    base = base_url or settings.KB_BASE_URL

    kb_docs = [
        kb_document(p, kb_path, text, base_url=base)
        for p, text in iter_documents(kb_path)
    ]

    existing: List[Any] = []
    if sources_path.exists():
        existing = json.loads(sources_path.read_text(encoding="utf-8"))
        if not isinstance(existing, list):
            raise RuntimeError(f"{sources_path} must hold a JSON list")

    preserved = [
        row for row in existing
        if not (isinstance(row, dict) and str(row.get("id", "")).startswith(KB_ID_PREFIX))
    ]
    merged = preserved + [d.model_dump(exclude_none=True) for d in kb_docs]

    sources_path.parent.mkdir(parents=True, exist_ok=True)
    sources_path.write_text(json.dumps(merged, ensure_ascii=False, indent=2), encoding="utf-8")

    log.info("INGEST done | kb_files=%s | preserved=%s | path=%s", len(kb_docs), len(preserved), sources_path)
    return len(kb_docs)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Ingest knowledge-base files into sources.json")
    parser.add_argument("kb_path", nargs="?", default=settings.KB_PATH, help="Knowledge-base folder")
    parser.add_argument("--sources", type=str, default=settings.SOURCES_PATH, help="Path to sources.json")
    args = parser.parse_args(argv)

    kb_path = Path(args.kb_path)
    if not kb_path.exists():
        print(f"ERROR: KB path not found: {kb_path}")
        return 1

    if not any(p.is_file() and p.suffix.lower() in KB_EXTENSIONS for p in kb_path.rglob("*")):
        print(f"ERROR: No {', '.join(KB_EXTENSIONS)} files found in KB path.")
        return 1

    n = ingest_kb(kb_path, Path(args.sources))
    print(f"Ingested {n} KB files into {args.sources}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
