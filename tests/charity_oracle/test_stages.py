"""Tests for scoring/stages.py module."""

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from charity_oracle.errors import (
    CollaboratorRejectedError,
    MalformedResponseError,
    TransientCollaboratorError,
)
from charity_oracle.scoring.results import StageFailureKind
from charity_oracle.scoring.stages import (
    DocumentReachabilityStage,
    ImageAnalysisStage,
    TextAnalysisStage,
    check_online_presence,
    resolve_document_url,
)


def _client(**methods):
    client = MagicMock()
    for name, mock in methods.items():
        setattr(client, name, mock)
    return client


class TestTextAnalysisStage:
    async def test_success(self):
        client = _client(complete_json=AsyncMock(return_value={
            "baseScore": 72,
            "reasoning": "Specific, credible description",
            "flags": ["new wallet", "  "],
        }))
        stage = TextAnalysisStage(client, "gpt-4o-mini")

        result = await stage.run("Hope Foundation", "Wells", "0xabc", "QmHash")

        assert result.ok
        assert result.value.base_score == 72
        assert result.value.flags == ["new wallet"]
        system, prompt, model = client.complete_json.call_args.args
        assert "Hope Foundation" in prompt
        assert "QmHash" in prompt
        assert model == "gpt-4o-mini"

    async def test_missing_base_score_is_malformed(self):
        client = _client(complete_json=AsyncMock(return_value={"reasoning": "ok"}))
        result = await TextAnalysisStage(client, "m").run("n", "d", "w", "r")

        assert not result.ok
        assert result.value is None
        assert result.failure.kind == StageFailureKind.MALFORMED

    async def test_unreachable_collaborator(self):
        client = _client(complete_json=AsyncMock(side_effect=TransientCollaboratorError("down")))
        result = await TextAnalysisStage(client, "m").run("n", "d", "w", "r")

        assert result.failure.kind == StageFailureKind.UNAVAILABLE
        assert "down" in result.failure.detail

    def test_parse_defaults_reasoning(self):
        analysis = TextAnalysisStage.parse({"baseScore": "40"})
        assert analysis.base_score == 40
        assert analysis.reasoning
        assert analysis.flags == []


class TestOnlinePresence:
    @pytest.mark.parametrize(
        "name,found",
        [
            ("Hope Foundation", True),
            ("CLEAN WATER FUND", True),
            ("Global Charity Network", True),
            ("Disaster Relief Now", True),
            ("Bob's Wallet", False),
            ("", False),
        ],
    )
    def test_indicators(self, name, found):
        assert check_online_presence(name).value.found is found


class TestResolveDocumentUrl:
    def test_bare_hash(self):
        assert resolve_document_url("QmHash123456", "https://ipfs.io/ipfs/") == "https://ipfs.io/ipfs/QmHash123456"

    def test_ipfs_scheme(self):
        assert resolve_document_url("ipfs://QmHash123456", "https://gw.example/ipfs") == "https://gw.example/ipfs/QmHash123456"

    def test_http_url_passes_through(self):
        url = "https://docs.example.org/report.pdf"
        assert resolve_document_url(url) == url


def _probe_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestDocumentReachabilityStage:
    async def test_reachable(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200)

        async with _probe_client(handler) as http:
            result = await DocumentReachabilityStage(http, "https://ipfs.io/ipfs/").run("QmDocumentHash123")

        assert result.ok
        assert result.value.valid is True
        assert seen[0].method == "HEAD"
        assert str(seen[0].url) == "https://ipfs.io/ipfs/QmDocumentHash123"

    async def test_not_found(self):
        async with _probe_client(lambda request: httpx.Response(404)) as http:
            result = await DocumentReachabilityStage(http).run("QmDocumentHash123")

        assert result.ok
        assert result.value.valid is False
        assert "404" in result.value.note

    async def test_network_error_is_neutral_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _probe_client(handler) as http:
            result = await DocumentReachabilityStage(http).run("QmDocumentHash123")

        assert result.value.valid is False
        assert result.failure.kind == StageFailureKind.UNAVAILABLE

    @pytest.mark.parametrize("reference", ["", "   ", "Qm123"])
    async def test_short_reference_not_probed(self, reference):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200)

        async with _probe_client(handler) as http:
            result = await DocumentReachabilityStage(http).run(reference)

        assert result.value.valid is False
        assert calls == []


class TestImageAnalysisStage:
    async def test_no_urls_skips_collaborator(self):
        client = _client(complete_vision_json=AsyncMock())
        result = await ImageAnalysisStage(client, "gpt-4o").run([], "n", "d")

        assert result.ok
        assert result.value.image_score == 0
        assert result.value.valid is False
        client.complete_vision_json.assert_not_called()

    async def test_success(self):
        client = _client(complete_vision_json=AsyncMock(return_value={
            "imageScore": 82, "valid": True, "reasoning": "Field photos match", "concerns": [],
        }))
        urls = ["https://cdn.example/a.jpg", "https://cdn.example/b.jpg"]
        result = await ImageAnalysisStage(client, "gpt-4o").run(urls, "Hope Foundation", "Wells")

        assert result.value.image_score == 82
        assert result.value.valid is True
        prompt, sent_urls, model = client.complete_vision_json.call_args.args
        assert sent_urls == urls
        assert model == "gpt-4o"

    async def test_high_score_counts_as_valid(self):
        analysis = ImageAnalysisStage.parse({"imageScore": 75})
        assert analysis.valid is True

    async def test_low_score_without_flag_is_invalid(self):
        analysis = ImageAnalysisStage.parse({"score": 40, "valid": "yes"})
        assert analysis.image_score == 40
        assert analysis.valid is False

    async def test_missing_score_is_malformed(self):
        with pytest.raises(MalformedResponseError):
            ImageAnalysisStage.parse({"valid": True})

    async def test_failure_is_neutral(self):
        client = _client(complete_vision_json=AsyncMock(side_effect=MalformedResponseError("junk")))
        result = await ImageAnalysisStage(client, "gpt-4o").run(["https://cdn.example/a.jpg"], "n", "d")

        assert not result.ok
        assert result.failure.kind == StageFailureKind.MALFORMED
        assert result.value.image_score == 0
        assert result.value.valid is False

    async def test_refused_request_is_rejected(self):
        error = CollaboratorRejectedError("LLM API 400: image url unreachable", status_code=400)
        client = _client(complete_vision_json=AsyncMock(side_effect=error))
        result = await ImageAnalysisStage(client, "gpt-4o").run(["https://cdn.example/gone.jpg"], "n", "d")

        assert result.failure.kind == StageFailureKind.REJECTED
        assert result.value.image_score == 0
