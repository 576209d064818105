"""
Command-line interface for convograph.

Usage:
    convograph serve --port 8080
    convograph serve --model mock          # offline echo model
    convograph chat --model openai/gpt-4o-mini

In ``chat``, an empty line ends the conversation.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from convograph.config import RuntimeConfig
from convograph.llm.litellm import LiteLLMProvider
from convograph.llm.mock import MockLLMProvider
from convograph.llm.provider import LLMProvider
from convograph.observability import configure_logging
from convograph.runtime.agent import ConversationAgent
from convograph.runtime.server import AgentServer, AgentServerConfig
from convograph.storage import CheckpointStore, FileCheckpointStore, InMemoryCheckpointStore

MOCK_MODEL = "mock"


def make_llm(model: str, api_key: str | None = None) -> LLMProvider:
    """LiteLLM for real model names, the echo mock for ``mock``."""
    if model == MOCK_MODEL:
        return MockLLMProvider()
    return LiteLLMProvider(model=model, api_key=api_key)


def make_store(checkpoint_dir: str | Path | None) -> CheckpointStore:
    """Checkpoint files under ``checkpoint_dir``, or memory when it is unset."""
    if checkpoint_dir:
        return FileCheckpointStore(Path(checkpoint_dir).expanduser())
    return InMemoryCheckpointStore()


def make_agent(args: argparse.Namespace, config: RuntimeConfig) -> ConversationAgent:
    return ConversationAgent.create(
        llm=make_llm(args.model or config.model, config.api_key),
        store=make_store(args.checkpoint_dir or config.checkpoint_dir),
        system_prompt=config.system_prompt,
        max_steps=args.max_steps or config.max_steps,
    )


async def _serve(agent: ConversationAgent, host: str, port: int) -> None:
    server = AgentServer(agent, AgentServerConfig(host=host, port=port))
    await server.start()
    print(f"Listening on http://{host}:{server.port}")
    print("  POST   /api/session/new")
    print("  POST   /api/session/message")
    print("  GET    /api/session/{id}/history")
    print("  DELETE /api/session/{id}")
    print("  WS     /ws")
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


def cmd_serve(args: argparse.Namespace) -> int:
    config = RuntimeConfig()
    configure_logging(level=args.log_level or config.log_level, format=config.log_format)
    agent = make_agent(args, config)
    try:
        port = args.port if args.port is not None else config.port
        asyncio.run(_serve(agent, args.host or config.host, port))
    except KeyboardInterrupt:
        print("\nShutting down")
    return 0


async def _chat(agent: ConversationAgent) -> int:
    session_id = agent.new_session(label="cli").session_id
    print("Type a message. An empty line ends the conversation.")
    started = False
    while True:
        try:
            text = await asyncio.to_thread(input, "you> ")
        except EOFError:
            text = ""
        if not text and not started:
            return 0
        started = True

        response = await agent.handle_message(session_id, text)
        print(f"agent> {response.response}")
        if response.is_error:
            return 1
        if not text:
            return 0


def cmd_chat(args: argparse.Namespace) -> int:
    config = RuntimeConfig()
    configure_logging(level=args.log_level or "WARNING", format=config.log_format)
    agent = make_agent(args, config)
    try:
        return asyncio.run(_chat(agent))
    except KeyboardInterrupt:
        print()
        return 130


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    """Register ``serve`` and ``chat``."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--model", help=f"LiteLLM model name, or '{MOCK_MODEL}'")
    common.add_argument("--max-steps", type=int, help="Node executions allowed per message")
    common.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR")
    common.add_argument(
        "--checkpoint-dir", help="Keep checkpoints as files here (default: in memory)"
    )

    serve_parser = subparsers.add_parser(
        "serve", parents=[common], help="Run the HTTP/WebSocket server"
    )
    serve_parser.add_argument("--host", help="Interface to bind")
    serve_parser.add_argument("--port", type=int, help="Port to bind (0 for any free port)")
    serve_parser.set_defaults(func=cmd_serve)

    chat_parser = subparsers.add_parser(
        "chat", parents=[common], help="Chat with the agent in the terminal"
    )
    chat_parser.set_defaults(func=cmd_chat)


def main():
    parser = argparse.ArgumentParser(
        prog="convograph",
        description="convograph - resumable conversational agent graphs",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)

    args = parser.parse_args()

    if hasattr(args, "func"):
        sys.exit(args.func(args))


if __name__ == "__main__":
    main()
