from __future__ import annotations

import re
from pathlib import Path
from typing import List, Optional

import httpx
import pandas as pd
from bs4 import BeautifulSoup
from langchain_community.document_loaders import Docx2txtLoader, PyPDFLoader, TextLoader
from langchain_core.documents import Document

from economist_ai.exception import EconomistException, ExtractionError, NoDataError
from economist_ai.logger import GLOBAL_LOGGER as log
from economist_ai.utils.thread_pool import run_sync

_WHITESPACE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


def _load_spreadsheet(path: Path, document_type: str) -> str:
    if document_type == "csv":
        frames = {"csv": pd.read_csv(path)}
    else:
        frames = pd.read_excel(path, sheet_name=None, engine="openpyxl")
    parts = []
    for sheet, df in frames.items():
        if document_type != "csv":
            parts.append(f"Sheet: {sheet}")
        parts.append(df.to_csv(index=False))
    return "\n".join(parts)


def _load_with_langchain(path: Path, document_type: str) -> List[Document]:
    if document_type == "pdf":
        loader = PyPDFLoader(str(path))
    elif document_type == "docx":
        loader = Docx2txtLoader(str(path))
    else:
        loader = TextLoader(str(path), encoding="utf-8", autodetect_encoding=True)
    return loader.load()


def _html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return soup.get_text(separator=" ")


class TextExtractor:
    """
    Pulls plain text out of uploaded files, URLs and raw text bodies.

    Every result is whitespace-normalized (runs collapsed to one space,
    trimmed). Unparseable input raises ExtractionError; input that parses
    but yields nothing raises NoDataError.
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self.http_client = http_client
        self.timeout = timeout

    @staticmethod
    def _require_text(text: str, source: str) -> str:
        text = normalize_whitespace(text)
        if not text:
            log.warning("Extraction produced no text | source=%s", source)
            raise NoDataError("No text could be extracted from the document", details=source)
        return text

    async def extract_text(self, path: Path, document_type: str) -> str:
        path = Path(path)
        try:
            if document_type in {"csv", "xlsx"}:
                raw = await run_sync(_load_spreadsheet, path, document_type)
            else:
                docs = await run_sync(_load_with_langchain, path, document_type)
                raw = "\n".join(d.page_content for d in docs)
        except EconomistException:
            raise
        except Exception as e:
            log.error("Failed processing file | file=%s | error=%s", str(path), str(e))
            raise ExtractionError(
                "Failed to extract text from file", details=f"{path.name}: {e}"
            ) from e

        text = self._require_text(raw, path.name)
        log.info(
            "Text extracted | file=%s | type=%s | chars=%d", path.name, document_type, len(text)
        )
        return text

    async def extract_text_from_url(self, url: str) -> str:
        try:
            if self.http_client is not None:
                resp = await self.http_client.get(url, timeout=self.timeout, follow_redirects=True)
            else:
                async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                    resp = await client.get(url)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            log.error("Failed to fetch URL | url=%s | error=%s", url, str(e))
            raise ExtractionError("Failed to fetch URL content", details=str(e)) from e

        content_type = resp.headers.get("content-type", "")
        raw = _html_to_text(resp.text) if "html" in content_type or not content_type else resp.text

        text = self._require_text(raw, url)
        log.info("Text extracted from URL | url=%s | chars=%d", url, len(text))
        return text

    def extract_from_text(self, text: str) -> str:
        return self._require_text(text, "raw_text")
