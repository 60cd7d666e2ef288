"""Tests for prompt construction, response cleanup and the fake providers."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from app.core.exceptions import MalformedProviderResponseError, ProviderFailureError
from app.domain.sections import split
from app.providers.anthropic_provider import AnthropicGenerationProvider
from app.providers.fake import FakeGenerationProvider, FakeRenderer
from app.providers.generation import GenerationRequest, build_prompt, extract_document, strip_code_fences
from app.providers.renderer import parse_log

pytestmark = pytest.mark.unit


def test_prompt_carries_base_context_instructions_and_previous_proposal():
    request = GenerationRequest(
        base_content="\\begin{document}BASE\\end{document}",
        instructions="Emphasize Python",
        job_context="Senior backend engineer",
        previous_proposal="\\begin{document}OLD\\end{document}",
    )

    system, messages = build_prompt(request)

    assert "LaTeX" in system
    assert len(messages) == 1 and messages[0]["role"] == "user"
    text = messages[0]["content"]
    assert "BASE" in text
    assert "Senior backend engineer" in text
    assert "Emphasize Python" in text
    assert "OLD" in text


def test_prompt_omits_missing_parts():
    _, messages = build_prompt(GenerationRequest(base_content="doc"))

    text = messages[0]["content"]
    assert "Job Description" not in text
    assert "previous proposal" not in text
    assert "Instructions" not in text


def test_strip_code_fences_unwraps_latex_fence():
    raw = "```latex\n\\begin{document}\nX\n\\end{document}\n```"

    assert strip_code_fences(raw) == "\\begin{document}\nX\n\\end{document}\n"


def test_strip_code_fences_leaves_plain_text_untouched():
    assert strip_code_fences("  plain\n") == "  plain\n"


def test_extract_document_rejects_blank_output():
    with pytest.raises(MalformedProviderResponseError, match="empty content"):
        extract_document("  \n", "anything")


def test_extract_document_rejects_non_text():
    with pytest.raises(MalformedProviderResponseError, match="expected text"):
        extract_document({"content": "x"}, "anything")


def test_extract_document_requires_document_body_when_base_has_one():
    with pytest.raises(MalformedProviderResponseError, match="begin\\{document\\}"):
        extract_document("Sure! Here is your resume.", "\\begin{document}x\\end{document}")


def test_extract_document_rejects_response_cut_off_before_end_document():
    base = "\\documentclass{article}\n\\begin{document}\n\\section{Skills}\nPython\n\\end{document}\n"

    with pytest.raises(MalformedProviderResponseError, match="end\\{document\\}"):
        extract_document(base[: base.index("Python")] + "Pyt", base)


def test_extract_document_accepts_plain_text_for_plain_base():
    assert extract_document("new text\n", "old text\n") == "new text\n"


async def test_fake_happy_path_modifies_only_the_first_recognized_section(sectioned_resume):
    provider = FakeGenerationProvider()

    result = await provider.generate(GenerationRequest(base_content=sectioned_resume, instructions="shorter"))

    before = {section.name: section.content for section in split(sectioned_resume)}
    after = {section.name: section.content for section in split(result)}
    assert after["EXPERIENCE"] != before["EXPERIENCE"]
    assert after["SKILLS"] == before["SKILLS"]
    assert after["OTHER"] == before["OTHER"]
    assert len(provider.requests) == 1


async def test_fake_error_scenarios():
    with pytest.raises(ProviderFailureError):
        await FakeGenerationProvider("provider_error").generate(GenerationRequest(base_content="x"))

    assert (await FakeGenerationProvider("malformed").generate(GenerationRequest(base_content="x"))).strip() == ""


def test_fake_rejects_unknown_scenario():
    with pytest.raises(ValueError, match="Unknown scenario"):
        FakeGenerationProvider("sometimes")


async def test_anthropic_provider_joins_text_blocks():
    client = SimpleNamespace(messages=SimpleNamespace(create=AsyncMock()))
    client.messages.create.return_value = SimpleNamespace(
        content=[SimpleNamespace(type="text", text="\\begin{document}"), SimpleNamespace(type="text", text="X")],
        stop_reason="end_turn",
    )
    provider = AnthropicGenerationProvider(client=client, model="test-model", max_tokens=100, temperature=0.0)

    result = await provider.generate(GenerationRequest(base_content="base", instructions="go"))

    assert result == "\\begin{document}X"
    kwargs = client.messages.create.call_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["max_tokens"] == 100
    assert "base" in kwargs["messages"][0]["content"]


async def test_anthropic_provider_without_text_is_malformed():
    client = SimpleNamespace(messages=SimpleNamespace(create=AsyncMock()))
    client.messages.create.return_value = SimpleNamespace(content=[], stop_reason="end_turn")
    provider = AnthropicGenerationProvider(client=client, model="m", max_tokens=10, temperature=0.0)

    with pytest.raises(MalformedProviderResponseError):
        await provider.generate(GenerationRequest(base_content="base"))


def test_parse_log_splits_errors_and_warnings():
    log = (
        "This is pdfTeX\n"
        "LaTeX Warning: Reference `x' on page 1 undefined on input line 4.\n"
        "! Undefined control sequence.\n"
        "<recently read> \\foo\n"
        "l.7 \\foo\n"
        "Overfull \\hbox (1.0pt too wide) in paragraph at lines 3--4\n"
    )

    errors, warnings = parse_log(log)

    assert errors == ["! Undefined control sequence. (l.7 \\foo)"]
    assert len(warnings) == 2
    assert warnings[0].startswith("LaTeX Warning:")


async def test_fake_renderer_reports_unbalanced_braces():
    result = await FakeRenderer().render("\\begin{document}\\textbf{x\\end{document}")

    assert not result.succeeded
    assert result.diagnostics == ["! Missing } inserted."]


async def test_fake_renderer_warning_still_produces_artifact():
    result = await FakeRenderer().render("\\begin{document}\\todo\\end{document}")

    assert result.succeeded
    assert result.artifact.startswith(b"%PDF")
    assert len(result.diagnostics) == 1


async def test_anthropic_provider_rejects_truncated_output():
    client = SimpleNamespace(messages=SimpleNamespace(create=AsyncMock()))
    client.messages.create.return_value = SimpleNamespace(
        content=[SimpleNamespace(type="text", text="\\begin{document}\n\\section{Skills}\nPyt")],
        stop_reason="max_tokens",
    )
    provider = AnthropicGenerationProvider(client=client, model="m", max_tokens=10, temperature=0.0)

    with pytest.raises(MalformedProviderResponseError, match="truncated at 10 tokens"):
        await provider.generate(GenerationRequest(base_content="base"))
