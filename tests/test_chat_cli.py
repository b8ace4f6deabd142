from __future__ import annotations

from dataclerk.agent.models import ChartBlock, ChartKind, TableBlock, TextBlock
from dataclerk.tools import chat_cli


def test_render_blocks():
    assert chat_cli.render_block(TextBlock("hi")) == "hi"
    assert chat_cli.render_block(TableBlock("Totals", ["a", "b"], [["1", "2"]])) == "Totals\na | b\n1 | 2"
    assert chat_cli.render_block(ChartBlock("Mix", ChartKind.PIE, ["x", "y"], [60.0, 40.5])) == (
        "[PIE chart] Mix\nx=60, y=40.5"
    )


def test_no_arguments_prints_help(capsys):
    assert chat_cli.main([]) == 0
    assert "usage" in capsys.readouterr().out.lower()


def test_ask_runs_pipeline(monkeypatch, capsys):
    from dataclerk.agent.models import PipelineResult

    class FakeOrchestrator:
        def __init__(self, llm, data, **kwargs) -> None:
            pass

        async def process_query(self, database, question, api_key):
            assert (database, question, api_key) == ("shop", "how many?", "k")
            return PipelineResult("SELECT 1", [{"n": 1}], [TextBlock("One.")])

    monkeypatch.setattr(chat_cli, "QueryOrchestrator", FakeOrchestrator)

    assert chat_cli.main(["--ask", "shop", "how many?", "--api-key", "k"]) == 0
    out = capsys.readouterr().out
    assert "SQL: SELECT 1" in out
    assert "One." in out
