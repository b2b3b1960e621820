"""Unit tests for CLI commands."""

import json
import math
from unittest.mock import AsyncMock, patch

import pytest
import typer
from rich.console import Console
from typer.testing import CliRunner

from groundwork.config.schema import AppConfig
from groundwork.entities import KnowledgeChunk
from groundwork.interfaces import cli
from groundwork.interfaces.cli import (
    _ask_async,
    _context_async,
    _embed_async,
    _ingest_async,
    _search_async,
    _stats_async,
    app,
)
from groundwork.providers.base import EmbeddingProvider, LLMProvider, ProviderError
from groundwork.storage.memory import InMemoryPassageStore

runner = CliRunner()


def memory_config() -> AppConfig:
    return AppConfig(passage_store={"store_type": "memory"})


async def populated_store(embedded: bool = True) -> InMemoryPassageStore:
    store = InMemoryPassageStore()
    await store.add_source("trees", "Fruit Trees")
    await store.add_chunk(
        KnowledgeChunk(
            id="t0",
            source_id="trees",
            source_title="Fruit Trees",
            page_number=7,
            chunk_index=0,
            text="Prune apple trees in late winter.",
            embedding=[0.9, math.sqrt(1 - 0.81)] if embedded else None,
        )
    )
    return store


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    """Keep table cells on one line regardless of the terminal."""
    monkeypatch.setattr(cli, "console", Console(width=200))


@pytest.fixture
def embedding_provider():
    provider = AsyncMock(spec=EmbeddingProvider)
    provider.embed_text.return_value = [1.0, 0.0]
    provider.embed_batch.side_effect = lambda texts: [[1.0, 0.0] for _ in texts]
    return provider


@pytest.fixture
def llm_provider():
    provider = AsyncMock(spec=LLMProvider)
    provider.chat.return_value = "Prune in late winter, before bud break."
    provider.generate.return_value = "- Pruning schedule"
    return provider


@pytest.mark.asyncio
class TestSearchCommand:
    """Test search command."""

    @patch("groundwork.interfaces.cli._load_config")
    @patch("groundwork.interfaces.cli._open_components")
    async def test_search_prints_ranked_results(self, mock_open, mock_load_config, embedding_provider, capsys):
        mock_load_config.return_value = memory_config()
        mock_open.return_value = (await populated_store(), embedding_provider)

        await _search_async("pruning", top_k=None, min_similarity=None, config_file=None)

        output = capsys.readouterr().out
        assert "Fruit Trees" in output
        assert "0.9000" in output
        embedding_provider.close.assert_awaited_once()

    @patch("groundwork.interfaces.cli._load_config")
    @patch("groundwork.interfaces.cli._open_components")
    async def test_search_reports_fallback(self, mock_open, mock_load_config, embedding_provider, capsys):
        mock_load_config.return_value = memory_config()
        mock_open.return_value = (await populated_store(embedded=False), embedding_provider)

        await _search_async("pruning", top_k=None, min_similarity=None, config_file=None)

        assert "unranked" in capsys.readouterr().out

    @patch("groundwork.interfaces.cli._load_config")
    @patch("groundwork.interfaces.cli._open_components")
    async def test_search_degraded_exits_nonzero(self, mock_open, mock_load_config, embedding_provider):
        mock_load_config.return_value = memory_config()
        embedding_provider.embed_text.side_effect = ProviderError("down", provider="openai")
        mock_open.return_value = (await populated_store(), embedding_provider)

        with pytest.raises(typer.Exit) as exc_info:
            await _search_async("pruning", top_k=None, min_similarity=None, config_file=None)

        assert exc_info.value.exit_code == 1

    @patch("groundwork.interfaces.cli._load_config")
    @patch("groundwork.interfaces.cli._open_components")
    async def test_search_invalid_arguments(self, mock_open, mock_load_config, embedding_provider):
        mock_load_config.return_value = memory_config()
        mock_open.return_value = (await populated_store(), embedding_provider)

        with pytest.raises(typer.Exit) as exc_info:
            await _search_async("pruning", top_k=0, min_similarity=None, config_file=None)

        assert exc_info.value.exit_code == 2

    @patch("groundwork.interfaces.cli._load_config")
    @patch("groundwork.interfaces.cli._open_components")
    async def test_search_empty_store(self, mock_open, mock_load_config, embedding_provider, capsys):
        mock_load_config.return_value = memory_config()
        mock_open.return_value = (InMemoryPassageStore(), embedding_provider)

        await _search_async("pruning", top_k=None, min_similarity=None, config_file=None)

        assert "empty" in capsys.readouterr().out


@pytest.mark.asyncio
class TestContextCommand:
    """Test context command."""

    @patch("groundwork.interfaces.cli._load_config")
    @patch("groundwork.interfaces.cli._open_components")
    async def test_prints_prompt_block(self, mock_open, mock_load_config, embedding_provider, capsys):
        mock_load_config.return_value = memory_config()
        mock_open.return_value = (await populated_store(), embedding_provider)

        await _context_async("pruning", top_k=None, config_file=None)

        output = capsys.readouterr().out
        assert "[Source 1: Fruit Trees, page 7 (90% relevant)]" in output
        assert "Prune apple trees in late winter." in output

    @patch("groundwork.interfaces.cli._load_config")
    @patch("groundwork.interfaces.cli.build_embedding_provider")
    @patch("groundwork.interfaces.cli.initialize_store")
    async def test_unavailable_provider_degrades_to_empty_context(
        self, mock_initialize, mock_build, mock_load_config, capsys
    ):
        mock_load_config.return_value = memory_config()
        mock_initialize.return_value = await populated_store()
        mock_build.side_effect = ProviderError("OpenAI API key required", provider="openai")

        await _context_async("pruning", top_k=None, config_file=None)

        assert "No knowledge context available" in capsys.readouterr().out

    @patch("groundwork.interfaces.cli._load_config")
    @patch("groundwork.interfaces.cli.build_embedding_provider")
    @patch("groundwork.interfaces.cli.initialize_store")
    async def test_unavailable_provider_keeps_fallback_passages(
        self, mock_initialize, mock_build, mock_load_config, capsys
    ):
        mock_load_config.return_value = memory_config()
        mock_initialize.return_value = await populated_store(embedded=False)
        mock_build.side_effect = ProviderError("OpenAI API key required", provider="openai")

        await _context_async("pruning", top_k=None, config_file=None)

        assert "[Source 1: Fruit Trees, page 7]" in capsys.readouterr().out

    @patch("groundwork.interfaces.cli._load_config")
    @patch("groundwork.interfaces.cli.build_embedding_provider")
    @patch("groundwork.interfaces.cli.initialize_store")
    async def test_search_still_exits_when_provider_unavailable(self, mock_initialize, mock_build, mock_load_config):
        mock_load_config.return_value = memory_config()
        store = await populated_store()
        mock_initialize.return_value = store
        mock_build.side_effect = ProviderError("OpenAI API key required", provider="openai")

        with pytest.raises(typer.Exit) as exc_info:
            await _search_async("pruning", top_k=None, min_similarity=None, config_file=None)

        assert exc_info.value.exit_code == 1
        assert store.chunks == {}


@pytest.mark.asyncio
class TestAskCommand:
    """Test ask command."""

    @patch("groundwork.interfaces.cli._load_config")
    @patch("groundwork.interfaces.cli.build_llm_provider")
    @patch("groundwork.interfaces.cli._open_components")
    async def test_answers_with_configured_prompt_and_sampling(
        self, mock_open, mock_build_llm, mock_load_config, embedding_provider, llm_provider, capsys
    ):
        mock_load_config.return_value = AppConfig(
            passage_store={"store_type": "memory"},
            system_prompt="You are a gardening assistant.",
            llm={"max_tokens": 321, "temperature": 0.2},
        )
        mock_open.return_value = (await populated_store(), embedding_provider)
        mock_build_llm.return_value = llm_provider

        await _ask_async("When do I prune apples?", history_file=None, top_k=None, config_file=None)

        assert "Prune in late winter" in capsys.readouterr().out
        messages = llm_provider.chat.await_args.args[0]
        assert messages[0]["content"].startswith("You are a gardening assistant.")
        assert "[Source 1: Fruit Trees, page 7 (90% relevant)]" in messages[0]["content"]
        assert messages[-1] == {"role": "user", "content": "When do I prune apples?"}
        assert llm_provider.chat.await_args.kwargs == {"max_tokens": 321, "temperature": 0.2}
        llm_provider.close.assert_awaited_once()
        embedding_provider.close.assert_awaited_once()

    @patch("groundwork.interfaces.cli._load_config")
    @patch("groundwork.interfaces.cli.build_llm_provider")
    @patch("groundwork.interfaces.cli._open_components")
    async def test_history_is_summarized_by_llm_when_configured(
        self, mock_open, mock_build_llm, mock_load_config, embedding_provider, llm_provider, tmp_path
    ):
        mock_load_config.return_value = AppConfig(
            passage_store={"store_type": "memory"},
            context_window={"summarizer": "llm", "max_history_tokens": 50, "keep_recent_pairs": 1},
        )
        mock_open.return_value = (await populated_store(), embedding_provider)
        mock_build_llm.return_value = llm_provider
        history = []
        for i in range(5):
            history.append({"role": "user", "content": f"Question {i}. " + "q" * 100})
            history.append({"role": "assistant", "content": f"Answer {i}. " + "a" * 100})
        history_file = tmp_path / "history.json"
        history_file.write_text(json.dumps(history), encoding="utf-8")

        await _ask_async("And compost?", history_file=history_file, top_k=1, config_file=None)

        llm_provider.generate.assert_awaited_once()
        messages = llm_provider.chat.await_args.args[0]
        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
        assert "- Pruning schedule" in messages[1]["content"]
        assert messages[2] == history[-1]

    @patch("groundwork.interfaces.cli._load_config")
    @patch("groundwork.interfaces.cli.build_llm_provider")
    @patch("groundwork.interfaces.cli._open_components")
    async def test_llm_failure_exits_1(
        self, mock_open, mock_build_llm, mock_load_config, embedding_provider, llm_provider
    ):
        mock_load_config.return_value = memory_config()
        mock_open.return_value = (await populated_store(), embedding_provider)
        llm_provider.chat.side_effect = ProviderError("rate limited", provider="openai")
        mock_build_llm.return_value = llm_provider

        with pytest.raises(typer.Exit) as exc_info:
            await _ask_async("When do I prune apples?", history_file=None, top_k=None, config_file=None)

        assert exc_info.value.exit_code == 1
        llm_provider.close.assert_awaited_once()

    @patch("groundwork.interfaces.cli._load_config")
    @patch("groundwork.interfaces.cli.build_llm_provider")
    @patch("groundwork.interfaces.cli._open_components")
    async def test_blank_question_exits_2(
        self, mock_open, mock_build_llm, mock_load_config, embedding_provider, llm_provider
    ):
        mock_load_config.return_value = memory_config()
        mock_open.return_value = (await populated_store(), embedding_provider)
        mock_build_llm.return_value = llm_provider

        with pytest.raises(typer.Exit) as exc_info:
            await _ask_async("   ", history_file=None, top_k=None, config_file=None)

        assert exc_info.value.exit_code == 2
        llm_provider.chat.assert_not_awaited()


@pytest.mark.asyncio
class TestIngestCommand:
    """Test ingest command."""

    @pytest.fixture
    def store(self):
        store = InMemoryPassageStore()
        # Keep contents inspectable after the command closes the store
        store.close = AsyncMock()
        return store

    @patch("groundwork.interfaces.cli._load_config")
    @patch("groundwork.interfaces.cli.initialize_store")
    async def test_ingests_directory(self, mock_initialize, mock_load_config, store, tmp_path, capsys):
        mock_load_config.return_value = memory_config()
        mock_initialize.return_value = store
        (tmp_path / "soil.md").write_text("# Soil Basics\n\nCompost feeds soil life.\n", encoding="utf-8")
        (tmp_path / "water.txt").write_text("A swale slows water on contour.", encoding="utf-8")
        (tmp_path / "cover.png").write_bytes(b"\x89PNG")

        await _ingest_async([tmp_path], title=None, config_file=None)

        output = capsys.readouterr().out
        assert "Soil Basics: 1 chunk(s)" in output
        assert "water: 1 chunk(s)" in output
        assert "Ingested 2 file(s), 2 chunk(s)" in output
        assert sorted(store.sources.values()) == ["Soil Basics", "water"]
        assert (await store.get_stats()).total_chunks == 2
        store.close.assert_awaited_once()

    @patch("groundwork.interfaces.cli._load_config")
    @patch("groundwork.interfaces.cli.initialize_store")
    async def test_title_option(self, mock_initialize, mock_load_config, store, tmp_path):
        mock_load_config.return_value = memory_config()
        mock_initialize.return_value = store
        path = tmp_path / "notes.txt"
        path.write_text("Legumes fix nitrogen in soil.", encoding="utf-8")

        await _ingest_async([path], title="Field Notes", config_file=None)

        assert list(store.sources.values()) == ["Field Notes"]

    @patch("groundwork.interfaces.cli._load_config")
    @patch("groundwork.interfaces.cli.initialize_store")
    async def test_unsupported_file_is_reported(self, mock_initialize, mock_load_config, store, tmp_path, capsys):
        mock_load_config.return_value = memory_config()
        mock_initialize.return_value = store
        path = tmp_path / "book.pdf"
        path.write_bytes(b"%PDF-1.7")

        with pytest.raises(typer.Exit) as exc_info:
            await _ingest_async([path], title=None, config_file=None)

        assert exc_info.value.exit_code == 1
        assert "Unsupported file type" in capsys.readouterr().out
        assert store.chunks == {}

    @patch("groundwork.interfaces.cli._load_config")
    async def test_empty_directory_exits_1(self, mock_load_config, tmp_path):
        mock_load_config.return_value = memory_config()

        with pytest.raises(typer.Exit) as exc_info:
            await _ingest_async([tmp_path], title=None, config_file=None)

        assert exc_info.value.exit_code == 1

    @patch("groundwork.interfaces.cli._load_config")
    async def test_title_with_several_files_exits_2(self, mock_load_config, tmp_path):
        mock_load_config.return_value = memory_config()
        for name in ("a.txt", "b.txt"):
            (tmp_path / name).write_text("Some text.", encoding="utf-8")

        with pytest.raises(typer.Exit) as exc_info:
            await _ingest_async([tmp_path], title="One Title", config_file=None)

        assert exc_info.value.exit_code == 2


@pytest.mark.asyncio
class TestEmbedCommand:
    """Test embed command."""

    @patch("groundwork.interfaces.cli._load_config")
    @patch("groundwork.interfaces.cli._open_components")
    async def test_embeds_pending_chunks(self, mock_open, mock_load_config, embedding_provider, capsys):
        store = await populated_store(embedded=False)
        mock_load_config.return_value = memory_config()
        mock_open.return_value = (store, embedding_provider)

        await _embed_async(limit=10, config_file=None)

        assert "Embedded 1 chunk(s)" in capsys.readouterr().out
        embedding_provider.embed_batch.assert_awaited_once_with(["Prune apple trees in late winter."])

    @patch("groundwork.interfaces.cli._load_config")
    @patch("groundwork.interfaces.cli._open_components")
    async def test_failures_exit_nonzero(self, mock_open, mock_load_config, embedding_provider):
        embedding_provider.embed_batch.side_effect = ProviderError("down", provider="openai")
        mock_load_config.return_value = memory_config()
        mock_open.return_value = (await populated_store(embedded=False), embedding_provider)

        with pytest.raises(typer.Exit) as exc_info:
            await _embed_async(limit=10, config_file=None)

        assert exc_info.value.exit_code == 1


@pytest.mark.asyncio
class TestStatsCommand:
    """Test stats command."""

    @patch("groundwork.interfaces.cli._load_config")
    @patch("groundwork.interfaces.cli.initialize_store")
    async def test_prints_counts(self, mock_initialize, mock_load_config, capsys):
        mock_load_config.return_value = memory_config()
        mock_initialize.return_value = await populated_store()

        await _stats_async(config_file=None)

        output = capsys.readouterr().out
        assert "Embedded chunks" in output


class TestCompressCommand:
    """Test compress command."""

    @patch("groundwork.interfaces.cli._load_config")
    def test_compresses_and_writes_output(self, mock_load_config, tmp_path):
        mock_load_config.return_value = AppConfig()
        history = []
        for i in range(10):
            history.append({"role": "user", "content": f"Question {i}. " + "q" * 100})
            history.append({"role": "assistant", "content": f"Answer {i}. " + "a" * 100})
        history_file = tmp_path / "history.json"
        history_file.write_text(json.dumps(history), encoding="utf-8")
        output_file = tmp_path / "managed.json"

        result = runner.invoke(
            app,
            ["compress", str(history_file), "--max-tokens", "50", "--keep-pairs", "3", "--output", str(output_file)],
        )

        assert result.exit_code == 0, result.output
        assert "History compressed" in result.output
        managed = json.loads(output_file.read_text(encoding="utf-8"))
        assert len(managed) == 6
        assert managed[0]["role"] == "user"
        assert managed[-1] == history[-1]

    @patch("groundwork.interfaces.cli._load_config")
    def test_short_history_unchanged(self, mock_load_config, tmp_path):
        mock_load_config.return_value = AppConfig()
        history_file = tmp_path / "history.json"
        history_file.write_text(
            json.dumps([{"role": "user", "content": "Hi."}, {"role": "assistant", "content": "Hello."}]),
            encoding="utf-8",
        )

        result = runner.invoke(app, ["compress", str(history_file)])

        assert result.exit_code == 0
        assert "History unchanged" in result.output

    @patch("groundwork.interfaces.cli._load_config")
    def test_broken_alternation_exits_2(self, mock_load_config, tmp_path):
        mock_load_config.return_value = AppConfig()
        history_file = tmp_path / "history.json"
        history_file.write_text(
            json.dumps([{"role": "user", "content": "Hi."}, {"role": "user", "content": "Hello?"}]),
            encoding="utf-8",
        )

        result = runner.invoke(app, ["compress", str(history_file)])

        assert result.exit_code == 2

    @patch("groundwork.interfaces.cli._load_config")
    def test_non_list_json_exits_1(self, mock_load_config, tmp_path):
        mock_load_config.return_value = AppConfig()
        history_file = tmp_path / "history.json"
        history_file.write_text(json.dumps({"role": "user"}), encoding="utf-8")

        result = runner.invoke(app, ["compress", str(history_file)])

        assert result.exit_code == 1

    @patch("groundwork.interfaces.cli._load_config")
    @patch("groundwork.interfaces.cli.build_llm_provider")
    def test_llm_summarizer_is_used_when_configured(self, mock_build_llm, mock_load_config, llm_provider, tmp_path):
        mock_load_config.return_value = AppConfig(context_window={"summarizer": "llm"})
        mock_build_llm.return_value = llm_provider
        history = []
        for i in range(10):
            history.append({"role": "user", "content": f"Question {i}. " + "q" * 100})
            history.append({"role": "assistant", "content": f"Answer {i}. " + "a" * 100})
        history_file = tmp_path / "history.json"
        history_file.write_text(json.dumps(history), encoding="utf-8")
        output_file = tmp_path / "managed.json"

        result = runner.invoke(
            app,
            ["compress", str(history_file), "--max-tokens", "50", "--keep-pairs", "3", "--output", str(output_file)],
        )

        assert result.exit_code == 0, result.output
        managed = json.loads(output_file.read_text(encoding="utf-8"))
        assert "- Pruning schedule" in managed[0]["content"]
        llm_provider.generate.assert_awaited_once()
        llm_provider.close.assert_awaited_once()


class TestInfoCommand:
    """Test info command."""

    @patch("groundwork.interfaces.cli._load_config")
    def test_shows_settings(self, mock_load_config):
        mock_load_config.return_value = AppConfig(retrieval={"top_k": 8})

        result = runner.invoke(app, ["info"])

        assert result.exit_code == 0
        assert "Top K" in result.output
        assert "8" in result.output
