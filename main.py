"""bookstr - citation search across federated sources

Simple CLI for resolving a citation such as "John 3:16 KJV".
"""

import argparse
import asyncio
import json
from pathlib import Path

from bookstr.models.records import ContentRecord
from bookstr.services.ranking import StaticTrustScores
from bookstr.services.search_controller import BookSearch
from bookstr.tools.sources import SourceRegistry, StaticSource


def load_fixtures(path: str) -> tuple[SourceRegistry, StaticTrustScores]:
    """Build in-memory sources from a JSON file.

    {"sources": [{"id": "a", "records": [...], "delay_s": 0.1, "fail": "boom"}],
     "trust": {"<author>": 10}}
    """
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    registry = SourceRegistry()
    for entry in payload.get("sources", []):
        registry.add(
            StaticSource(
                entry["id"],
                [ContentRecord.from_dict(r) for r in entry.get("records", [])],
                delay_s=float(entry.get("delay_s", 0.0)),
                fail_with=RuntimeError(entry["fail"]) if entry.get("fail") else None,
            )
        )
    return registry, StaticTrustScores(payload.get("trust") or {})


async def run_search(query: str, book_type: str | None = None, fixtures: str | None = None):
    """Run one search and print its events."""
    print(f"Citation: {query}")
    print("-" * 50)

    if fixtures:
        registry, trust = load_fixtures(fixtures)
    else:
        registry, trust = SourceRegistry.from_settings(), StaticTrustScores()

    engine = BookSearch(registry, trust=trust)

    async for event in engine.stream(query, book_type):
        event_type = event.event.value
        data = event.data

        if event_type == "search_started":
            parsed = data.get("parsed_query")
            if parsed:
                labels = ", ".join(ref["label"] for ref in parsed["references"])
                print(f"\n[*] Looking up {labels}")
                if parsed.get("version") or parsed.get("versions"):
                    print(f"    Version: {parsed.get('version') or ', '.join(parsed['versions'])}")

        elif event_type == "cache_hit":
            print(f"  [+] {data.get('count')} cached records")

        elif event_type == "results_updated":
            print(f"  [~] {len(data.get('results', []))} results so far")

        elif event_type == "source_completed":
            status = f"failed: {data['error']}" if data.get("error") else "done"
            print(f"  [+] {data.get('source_id')} {status} ({data.get('completed')}/{data.get('total')})")

        elif event_type == "version_fallback":
            print(f"\n[!] Nothing found for {', '.join(data.get('requested_versions', []))}, trying any version...")

        elif event_type == "search_complete":
            if data.get("parse_failed"):
                print("\n[!] No citation recognized.")
                continue
            results = data.get("results", [])
            print(f"\n[*] Search Complete! {len(results)} results in {data.get('runtime_ms')}ms")
            print(f"{'='*50}")
            for record in results:
                print(f"{record['title']}  [{record['author'][:12]}]")
                print(f"  {record['content'][:200]}")

        elif event_type == "error":
            print(f"\n[!] Error: {data.get('message', 'Unknown error')}")


def main():
    parser = argparse.ArgumentParser(description="bookstr citation search")
    parser.add_argument("--query", "-q", required=True, help="Citation, e.g. 'Gen 3:5-8 KJV'")
    parser.add_argument("--book-type", "-b", help="Book type (default: from config)")
    parser.add_argument("--fixtures", "-f", help="JSON file with in-memory sources")

    args = parser.parse_args()

    asyncio.run(run_search(args.query, args.book_type, args.fixtures))


if __name__ == "__main__":
    main()
