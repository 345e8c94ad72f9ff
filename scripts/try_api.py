#!/usr/bin/env python3
"""
Manually exercise the InspectDx Python API against a freshly seeded index.

Seeds the static catalog, prints stats, runs a semantic search, a
classification, and a full diagnosis so you can see seed(), search(),
classify() and diagnose() in action.

Usage:
  # Offline (hashing embeddings, in-memory index)
  python scripts/try_api.py --offline

  # Custom symptom
  python scripts/try_api.py --offline "Getriebe schaltet nicht, Hydraulikdruck schwankt"

  # With real embeddings (needs OPENAI_API_KEY), persisted to ./.inspectdx
  python scripts/try_api.py --sqlite

Requirements:
  - InspectDx installed (pip install -e . from project root)
"""

import sys
from pathlib import Path

# Optional: use src layout so "inspectdx" is importable from a checkout
_src = Path(__file__).resolve().parent.parent / "src"
if _src.exists() and str(_src) not in sys.path:
    sys.path.insert(0, str(_src))


def main() -> None:
    import argparse
    from inspectdx import Inspectdx, InspectdxError

    parser = argparse.ArgumentParser(
        description="Seed the knowledge store and run an example diagnosis.",
    )
    parser.add_argument(
        "symptom",
        nargs="?",
        default="Motor überhitzt beim Starten, Öldruck schwankt",
        help="Symptom report to diagnose",
    )
    parser.add_argument("--offline", action="store_true",
                        help="Hashing embeddings and lexical reranking (no API key needed)")
    parser.add_argument("--sqlite", action="store_true",
                        help="Persist the index in ./.inspectdx instead of memory")
    parser.add_argument("--hint", default=None, help="Optional component hint")
    args = parser.parse_args()

    client = Inspectdx(
        embedding_fallback_only=args.offline,
        index_backend="sqlite" if args.sqlite else "memory",
    )
    print(f"Health: {client.health()}\n")

    try:
        result = client.seed(show_progress=True)
        print(f"\nSeeded {result.total_chunks} chunks: {result.chunks_by_type}\n")

        print("--- search('Kettenspannung prüfen', top_k=3) ---")
        hits = client.search("Kettenspannung prüfen", top_k=3, min_score=0.0)
        for item in hits.items:
            print(f"  [{item.source_section_id}] {item.score:.3f} {item.checkpoint_name or item.section_name}")

        print("\n--- classify('Kettenglied gerissen') ---")
        c = client.classify("Kettenglied gerissen")
        print(f"  {c.priority.value}  {c.response_time}  (confidence {c.confidence})")

        print(f"\n--- diagnose({args.symptom!r}) ---")
        report = client.diagnose(args.symptom, component_hint=args.hint)
        print(report.to_json())

        print(f"\nStats: {client.stats()}")
    except InspectdxError as exc:
        print(f"Error: {exc}")
        sys.exit(1)
    finally:
        client.close()


if __name__ == "__main__":
    main()
