import asyncio
import subprocess
from pathlib import Path
from typing import Annotated, List

from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from agent_runtime import OpenAIInferenceAdapter, RuntimeConfig, ToolRegistry
from agent_runtime.llm_core import setup_logging
from agent_runtime.llm_core.tools import ToolRenderEvent
from agent_runtime.session import DebugSession, SessionBudget

registry = ToolRegistry()


@registry.tool
def read_files(paths: Annotated[List[str], Field(description="Files to read, relative to the project root.")]) -> dict:
    """Read source files of the project."""
    return {path: Path(path).read_text(encoding="utf-8") for path in paths}


@registry.tool
def exec_commands(command: Annotated[str, Field(description="Shell command to run in the project root.")]) -> str:
    """Run a shell command and return its combined output."""
    completed = subprocess.run(command, shell=True, capture_output=True, text=True, timeout=120)
    return completed.stdout + completed.stderr


class DebugReport(BaseModel):
    root_cause: str = Field(description="What was broken.")
    changed_files: List[str] = Field(default_factory=list, description="Files that were modified.")


def render(event: ToolRenderEvent) -> None:
    if event.status == "start":
        print(f"-> {event.name}({event.args})")
    else:
        print(f"<- {event.name}: {(event.result or '')[:120]}")


async def main() -> None:
    """
    Run one autonomous debugging session against the current directory.
    """
    setup_logging()
    config = RuntimeConfig.from_env()
    if not config.api_key:
        print("Error: OPENAI_API_KEY not found in environment variables.")
        return

    adapter = OpenAIInferenceAdapter(
        client=AsyncOpenAI(api_key=config.api_key, base_url=config.base_url),
        model_name=config.model,
    )
    operation = config.operation("debug")
    session = DebugSession(
        adapter,
        tools=list(registry),
        budget=SessionBudget(max_rounds=operation.max_rounds, max_seconds=operation.max_seconds),
        reasoning_effort=operation.reasoning_effort,
        remote_servers=config.mcp_servers,
        render=render,
        response_schema=DebugReport,
    )

    issue = input("What is broken? ").strip()
    result = await session.debug(issue)
    print(f"\nSession {result.status.value} after {result.rounds} round(s).")
    if result.object is not None:
        print(result.object.model_dump_json(indent=2))


if __name__ == "__main__":
    asyncio.run(main())
