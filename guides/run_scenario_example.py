"""Example showing how to run a scenario and follow its progress events."""

import asyncio
import sys

from lendflow import FlowOrchestrator, get_ledger, get_transport, load_config


async def follow(transport):
    async for event in transport.subscribe():
        if event.type == "step_update" and event.data.status.value != "running":
            print(f"{event.data.id}: {event.data.status.value} - {event.data.description}")
        elif event.type == "party_update" and event.data.address:
            print(f"{event.data.role.value}: {event.data.address}")


async def main():
    scenario_id = sys.argv[1] if len(sys.argv) > 1 else "loan-creation"

    config = load_config()
    transport = get_transport("inmemory", config=config)
    orchestrator = FlowOrchestrator(get_ledger(config), config=config, transports=[transport])

    watcher = asyncio.create_task(follow(transport))
    session = await orchestrator.run(scenario_id)
    await watcher

    print("\n".join(session.report))


if __name__ == "__main__":
    asyncio.run(main())
