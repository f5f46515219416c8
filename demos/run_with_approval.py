"""Start a run, stream its steps and answer approval gates from the terminal.

    RUNFLOW_API_KEY=... RUNFLOW_USER_ID=... python demos/run_with_approval.py "Draft a launch post" --agent 12
"""

import argparse
import asyncio

from runflow import PollingTimeout, WorkflowClient, WorkflowFailed, WorkflowsResource
from runflow.utils.logger import setup_logger_from_settings


async def main(query: str, agent_id: int | None, auto_approve: bool) -> int:
    async with WorkflowClient() as client:
        workflows = WorkflowsResource(client)
        run = await workflows.execute(query, agent_id=agent_id, require_approval=True)
        print(f"✓ Run created: {run.run_id}")

        while True:
            try:
                async for event in run.produce_steps():
                    print(f"  {event}")
            except PollingTimeout as exc:
                print(f"Still running after {exc.max_duration_s:g}s, polling again...")
                continue
            except WorkflowFailed as exc:
                print(f"✗ Run failed: {exc.message}")
                return 1

            if not run.needs_human_input():
                break

            task = run.pending_task
            print(f"\nApproval needed at '{task.step_name}': {task.prompt}")
            if auto_approve:
                await run.approve("auto-approved by demo")
                continue
            answer = input("Approve? [y/N] ").strip().lower()
            feedback = input("Feedback (optional): ").strip() or None
            if answer == "y":
                await run.approve(feedback)
            else:
                await run.reject(feedback)

        result = await run.result()
        print(f"\n✓ Completed in {result.execution_time_seconds():.1f}s")
        print(result.content)
        for url in result.file_urls():
            print(f"  file: {url}")
        return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("query")
    parser.add_argument("--agent", type=int, default=None)
    parser.add_argument("--yes", action="store_true", help="approve every gate automatically")
    args = parser.parse_args()

    setup_logger_from_settings()
    raise SystemExit(asyncio.run(main(args.query, args.agent, args.yes)))
