import asyncio
import json
import unittest

from application.chat.orchestrator import ChatOrchestrator, ChatSettings
from application.services.embedding_gateway import EmbeddingGateway
from application.tools.retrieval_tools import RetrievalTools, build_tool_registry
from domain.entities import (
    ChatEventType,
    ConversationTurn,
    EmbeddedChunk,
    Role,
    StepFinish,
    TextDelta,
    ToolCallRequest,
)
from domain.errors import RequestTimeout, UpstreamFailure
from infrastructure.splitting.period_splitter import PeriodSplitter
from infrastructure.storage.in_memory_embedding_store import InMemoryEmbeddingStore
from tests.fakes import ScriptedChatModel, StaticQueryExpander, TableEmbedder


def tool_call(call_id: str, name: str, arguments: dict) -> ToolCallRequest:
    return ToolCallRequest(id=call_id, name=name, arguments=json.dumps(arguments))


class OrchestratorTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.store = InMemoryEmbeddingStore(dimension=3)
        await self.store.insert([EmbeddedChunk("Sage grew up in Somerville", [1.0, 0.0, 0.0])])
        self.tools = build_tool_registry(
            RetrievalTools(
                splitter=PeriodSplitter(),
                gateway=EmbeddingGateway(TableEmbedder({"sage childhood": [1.0, 0.0, 0.0]})),
                store=self.store,
                query_expander=StaticQueryExpander(["sage childhood"]),
            )
        )
        self.turns = [ConversationTurn(role=Role.USER, content="Where did you grow up?")]

    def orchestrator(self, model: ScriptedChatModel, **settings) -> ChatOrchestrator:
        return ChatOrchestrator(model, self.tools, ChatSettings(system_prompt="You are Sage.", **settings))

    async def collect(self, orchestrator: ChatOrchestrator) -> list:
        return [event async for event in orchestrator.run(self.turns)]


class TestChatOrchestrator(OrchestratorTestCase):
    async def test_plain_answer_is_single_step(self) -> None:
        model = ScriptedChatModel([[TextDelta("Hi"), TextDelta(" there"), StepFinish("stop", 10, 2)]])

        events = await self.collect(self.orchestrator(model))

        self.assertEqual(
            [e.type for e in events],
            [ChatEventType.TEXT_DELTA, ChatEventType.TEXT_DELTA, ChatEventType.STEP_FINISH, ChatEventType.FINISH],
        )
        self.assertEqual(events[2].data["isContinued"], False)
        self.assertEqual(events[3].data["usage"], {"promptTokens": 10, "completionTokens": 2})
        self.assertEqual(model.calls[0]["tool_choice"], "auto")
        self.assertEqual(model.calls[0]["system"], "You are Sage.")

    async def test_tool_results_feed_next_step_in_issue_order(self) -> None:
        model = ScriptedChatModel(
            [
                [
                    tool_call("c1", "understandQuery", {"query": "grow up", "toolsToCallInOrder": ["getInformation"]}),
                    tool_call("c2", "getInformation", {"question": "grow up", "similarQuestions": ["sage childhood"]}),
                    StepFinish("tool-calls", 20, 5),
                ],
                [TextDelta("I grew up in Somerville."), StepFinish("stop", 30, 6)],
            ]
        )

        events = await self.collect(self.orchestrator(model))
        types = [e.type for e in events]

        self.assertEqual(
            types,
            [
                ChatEventType.TOOL_CALL,
                ChatEventType.TOOL_CALL,
                ChatEventType.TOOL_RESULT,
                ChatEventType.TOOL_RESULT,
                ChatEventType.STEP_FINISH,
                ChatEventType.TEXT_DELTA,
                ChatEventType.STEP_FINISH,
                ChatEventType.FINISH,
            ],
        )
        self.assertEqual([events[2].data["toolCallId"], events[3].data["toolCallId"]], ["c1", "c2"])
        self.assertEqual(events[2].data["result"], ["sage childhood"])
        self.assertEqual(events[3].data["result"][0]["content"], "Sage grew up in Somerville")
        self.assertTrue(events[4].data["isContinued"])
        self.assertEqual(events[-1].data["usage"], {"promptTokens": 50, "completionTokens": 11})

        second_context = model.calls[1]["messages"]
        self.assertEqual([t.role for t in second_context], [Role.USER, Role.ASSISTANT, Role.TOOL, Role.TOOL])
        self.assertEqual([i.tool_call_id for i in second_context[1].tool_invocations], ["c1", "c2"])
        self.assertEqual(second_context[2].tool_invocations[0].tool_call_id, "c1")
        self.assertEqual(json.loads(second_context[3].content)[0]["content"], "Sage grew up in Somerville")

    async def test_caller_turns_are_not_mutated(self) -> None:
        model = ScriptedChatModel(
            [
                [tool_call("c1", "understandQuery", {"query": "q", "toolsToCallInOrder": []}), StepFinish("tool-calls")],
                [TextDelta("done"), StepFinish("stop")],
            ]
        )
        await self.collect(self.orchestrator(model))
        self.assertEqual(len(self.turns), 1)

    async def test_tool_errors_are_reported_to_the_model(self) -> None:
        model = ScriptedChatModel(
            [
                [ToolCallRequest(id="c1", name="getInformation", arguments="{broken"), StepFinish("tool-calls")],
                [TextDelta("Sorry."), StepFinish("stop")],
            ]
        )

        events = await self.collect(self.orchestrator(model))

        result = next(e for e in events if e.type is ChatEventType.TOOL_RESULT)
        self.assertIn("error", result.data["result"])
        self.assertEqual(events[-1].type, ChatEventType.FINISH)
        self.assertIn("error", json.loads(model.calls[1]["messages"][-1].content))

    async def test_step_budget_forces_a_text_answer(self) -> None:
        looping_step = [
            tool_call("c", "understandQuery", {"query": "q", "toolsToCallInOrder": []}),
            StepFinish("tool-calls"),
        ]
        model = ScriptedChatModel([list(looping_step), list(looping_step), list(looping_step)])

        events = await self.collect(self.orchestrator(model, max_steps=3))

        self.assertEqual(len(model.calls), 3)
        self.assertEqual([c["tool_choice"] for c in model.calls], ["auto", "auto", "none"])
        self.assertEqual(sum(1 for e in events if e.type is ChatEventType.TOOL_CALL), 2)
        self.assertEqual(events[-1].type, ChatEventType.FINISH)
        self.assertFalse(events[-2].data["isContinued"])
        self.assertEqual(events[-2].data["finishReason"], "stop")
        self.assertEqual(events[-1].data["finishReason"], "stop")

    async def test_upstream_failure_propagates(self) -> None:
        model = ScriptedChatModel([[TextDelta("partial")]], error=UpstreamFailure("503"))

        received = []
        with self.assertRaises(UpstreamFailure):
            async for event in self.orchestrator(model).run(self.turns):
                received.append(event)

        self.assertEqual([e.data["text"] for e in received], ["partial"])
        self.assertEqual(model.closed, 1)

    async def test_slow_model_times_out(self) -> None:
        model = ScriptedChatModel([[TextDelta("a"), TextDelta("b"), StepFinish("stop")]], delay=0.2)

        with self.assertRaises(RequestTimeout):
            await self.collect(self.orchestrator(model, request_timeout=0.05))
        self.assertEqual(model.closed, 1)

    async def test_slow_tools_time_out(self) -> None:
        class SlowExpander(StaticQueryExpander):
            async def expand(self, query):
                await asyncio.sleep(1)
                return [query]

        self.tools = build_tool_registry(
            RetrievalTools(
                splitter=PeriodSplitter(),
                gateway=EmbeddingGateway(TableEmbedder({})),
                store=self.store,
                query_expander=SlowExpander(),
            )
        )
        model = ScriptedChatModel(
            [[tool_call("c1", "understandQuery", {"query": "q", "toolsToCallInOrder": []}), StepFinish("tool-calls")]]
        )

        with self.assertRaises(RequestTimeout):
            await self.collect(self.orchestrator(model, request_timeout=0.1))

    async def test_cancelling_the_reply_cancels_running_tools(self) -> None:
        started = asyncio.Event()
        cancelled = []

        class BlockingExpander(StaticQueryExpander):
            async def expand(self, query):
                started.set()
                try:
                    await asyncio.Event().wait()
                except asyncio.CancelledError:
                    cancelled.append(query)
                    raise
                return [query]

        self.tools = build_tool_registry(
            RetrievalTools(
                splitter=PeriodSplitter(),
                gateway=EmbeddingGateway(TableEmbedder({})),
                store=self.store,
                query_expander=BlockingExpander(),
            )
        )
        model = ScriptedChatModel(
            [
                [tool_call("c1", "understandQuery", {"query": "q", "toolsToCallInOrder": []}), StepFinish("tool-calls")],
                [TextDelta("never"), StepFinish("stop")],
            ]
        )

        task = asyncio.create_task(self.collect(self.orchestrator(model, request_timeout=30)))
        await asyncio.wait_for(started.wait(), 1)
        task.cancel()

        with self.assertRaises(asyncio.CancelledError):
            await task
        self.assertEqual(cancelled, ["q"])
        self.assertEqual(len(model.calls), 1)
        self.assertEqual(model.closed, 1)

    async def test_cancelling_the_reply_closes_the_model_stream(self) -> None:
        model = ScriptedChatModel([[TextDelta("a"), TextDelta("b"), StepFinish("stop")]], delay=5)

        task = asyncio.create_task(self.collect(self.orchestrator(model, request_timeout=30)))
        while not model.calls:
            await asyncio.sleep(0)
        await asyncio.sleep(0.01)
        task.cancel()

        with self.assertRaises(asyncio.CancelledError):
            await task
        self.assertEqual(model.closed, 1)

    def test_settings_reject_empty_budget(self) -> None:
        with self.assertRaises(ValueError):
            ChatSettings(system_prompt="x", max_steps=0)


if __name__ == "__main__":
    unittest.main()
