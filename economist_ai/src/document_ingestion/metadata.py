from __future__ import annotations

import asyncio
from typing import Dict

from langchain_core.output_parsers import StrOutputParser

from economist_ai.exception import MetadataError
from economist_ai.logger import GLOBAL_LOGGER as log
from economist_ai.prompts.prompt_library import PROMPT_REGISTRY


def derive_document_name(text: str, document_type: str, max_chars: int = 50) -> str:
    first_line = (text or "").split("\n")[0].strip()
    if not first_line:
        return f"Document.{document_type}"
    if len(first_line) > max_chars:
        return first_line[:max_chars] + "..."
    return first_line


class DocumentMetadataGenerator:
    """
    Summarizes extracted text with the low-temperature "summary" model.

    Any model failure raises MetadataError; ingestion does not fall back to a
    generic summary.
    """

    def __init__(
        self,
        llm,
        text_prefix_chars: int = 2000,
        name_max_chars: int = 50,
        timeout: float | None = 30.0,
    ):
        self.chain = PROMPT_REGISTRY["document_summary"] | llm | StrOutputParser()
        self.text_prefix_chars = text_prefix_chars
        self.name_max_chars = name_max_chars
        self.timeout = timeout

    async def summarize(self, text: str, document_type: str) -> Dict[str, str]:
        try:
            summary = await asyncio.wait_for(
                self.chain.ainvoke({"text": text[: self.text_prefix_chars]}),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            log.error("Summary generation timed out | type=%s", document_type)
            raise MetadataError("Document summary generation timed out") from e
        except Exception as e:
            log.error("Summary generation failed | type=%s | error=%s", document_type, str(e))
            raise MetadataError("Failed to generate document metadata", details=str(e)) from e

        metadata = {
            "documentName": derive_document_name(text, document_type, self.name_max_chars),
            "documentType": document_type,
            "documentSummary": summary.strip(),
        }
        log.info(
            "Document metadata generated | name=%s | summary_chars=%d",
            metadata["documentName"],
            len(metadata["documentSummary"]),
        )
        return metadata
