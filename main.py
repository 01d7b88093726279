"""Answer Engine

Simple CLI for asking questions.
"""

import argparse
import asyncio

from answer_engine.agents.orchestrator import AnswerOrchestrator
from answer_engine.models.hits import SourceType
from answer_engine.models.schemas import SearchRequest


async def run_search(request: SearchRequest):
    """Stream one answer to stdout."""
    print(f"Query: {request.query}")
    print("-" * 50)

    orchestrator = AnswerOrchestrator()

    async for event in orchestrator.stream(request):
        event_type = event.event.value
        data = event.data

        if event_type == "start":
            plan = data.get("plan", [])
            print(f"\n[*] Plan ({len(plan)} sub-task(s)):")
            for i, task in enumerate(plan, 1):
                print(f"  {i}. [{task.get('kind')}] {task.get('query', '')[:80]}")

        elif event_type == "stage":
            print(f"[~] {data.get('stage')}")

        elif event_type == "metrics":
            counts = ", ".join(f"{k}={v}" for k, v in data.get("by_source", {}).items())
            print(f"  [+] {counts} | pages: {data.get('pages_fetched', 0)}")

        elif event_type == "answer":
            print(f"\n{'='*50}")
            print("ANSWER:")
            print(f"{'='*50}")
            print(data.get("formatted_answer", ""))
            sources = data.get("sources", [])
            if sources:
                print("\nSources:")
                for source in sources:
                    print(f"  - {source.get('title')}: {source.get('url')}")

        elif event_type == "done":
            print(f"\n[*] Done in {data.get('runtime_ms')}ms")

        elif event_type == "error":
            print(f"\n[!] Error: {data.get('message', 'Unknown error')}")


def main():
    parser = argparse.ArgumentParser(description="Answer Engine")
    parser.add_argument("--query", "-q", required=True, help="Question to answer")
    parser.add_argument(
        "--depth", "-d", choices=["concise", "detailed", "phd"], default="concise"
    )
    parser.add_argument("--fast", action="store_true", help="Skip reranking, contradiction checks and verification")
    parser.add_argument("--no-verify", action="store_true", help="Skip answer verification")
    parser.add_argument(
        "--sources",
        "-s",
        help=f"Comma-separated sources ({', '.join(s.value for s in SourceType)})",
    )
    parser.add_argument("--max-web", type=int, default=8)

    args = parser.parse_args()

    sources = [SourceType(s.strip()) for s in args.sources.split(",")] if args.sources else None
    request = SearchRequest(
        query=args.query,
        max_web=args.max_web,
        fast=args.fast,
        verify=not args.no_verify,
        depth=args.depth,
        sources=sources,
    )
    asyncio.run(run_search(request))


if __name__ == "__main__":
    main()
