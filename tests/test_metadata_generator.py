import pytest

from economist_ai.exception import MetadataError
from economist_ai.src.document_ingestion.metadata import (
    DocumentMetadataGenerator,
    derive_document_name,
)
from tests.conftest import ScriptedChatModel


def test_name_is_first_line():
    assert derive_document_name("Quarterly Outlook\nbody text", "pdf") == "Quarterly Outlook"


def test_long_first_line_is_truncated():
    name = derive_document_name("x" * 80, "txt")
    assert name == "x" * 50 + "..."


def test_blank_text_falls_back_to_type():
    assert derive_document_name("   \nsecond", "docx") == "Document.docx"


async def test_summary_comes_from_model(metadata_generator):
    metadata = await metadata_generator.summarize("Central bank raises rates.", "txt")

    assert metadata == {
        "documentName": "Central bank raises rates.",
        "documentType": "txt",
        "documentSummary": "A concise summary of the text.",
    }


async def test_only_the_text_prefix_is_sent(summary_model, metadata_generator):
    text = "a" * 2000 + "TAIL_MARKER"

    await metadata_generator.summarize(text, "txt")

    prompt = "".join(str(m.content) for m in summary_model.calls[0])
    assert "a" * 2000 in prompt
    assert "TAIL_MARKER" not in prompt


async def test_model_failure_raises_metadata_error():
    generator = DocumentMetadataGenerator(ScriptedChatModel(fail=True))

    with pytest.raises(MetadataError) as exc:
        await generator.summarize("some text", "txt")

    assert exc.value.to_error()["type"] == "UNKNOWN_ERROR"
