import argparse
import asyncio
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from litnav_server.config import settings
from litnav_server.core.errors import LitNavError
from litnav_server.core.events import PREPROCESS_CHANNEL
from litnav_server.sessions.workspace import WorkspaceSession


async def print_progress(session: WorkspaceSession):
    with session.events.subscribe() as sub:
        async for event in sub:
            if event.channel != PREPROCESS_CHANNEL:
                continue
            payload = event.payload
            if event.type == "progress":
                line = f"[{payload['phase']}] {payload['current']}/{payload['total']}"
                if payload.get("file"):
                    line += f"  {os.path.basename(payload['file'])}"
                print(line)
            elif event.type in ("complete", "cancelled", "error"):
                print(f"Preprocessing {event.type}: {payload}")
                return


async def main():
    parser = argparse.ArgumentParser(
        description="Preprocess a folder of documents and run one semantic search."
    )
    parser.add_argument("folder", help="Workspace folder to scan")
    parser.add_argument("query", help="Search query")
    parser.add_argument("--per-doc", type=int, default=settings.per_doc_n,
                        help="Hits to show per document")
    args = parser.parse_args()

    print("Opening workspace...")
    session = WorkspaceSession(os.path.abspath(args.folder))
    files = session.workspace.include_files
    print(f"Found {len(files)} documents.")
    if not files:
        print("Nothing to preprocess.")
        return

    # Subscribe before starting so no progress event is missed
    printer = asyncio.create_task(print_progress(session))
    await asyncio.sleep(0)

    try:
        summary = await session.preprocessor.preprocess()
        await printer
        print(f"Indexed {summary.document_count} documents, {summary.chunk_count} chunks.")

        print(f"Searching: {args.query!r}")
        results = await session.search(args.query, args.per_doc)
    except LitNavError as e:
        printer.cancel()
        print(f"Error ({e.code}): {e.message}")
        sys.exit(1)
    finally:
        await session.close()

    for rank, doc in enumerate(results, start=1):
        print(f"\n{rank}. {doc.path}  (best {doc.best_score:.3f})")
        for hit in doc.hits:
            snippet = " ".join(hit.text.split())[:160]
            print(f"   p.{hit.page}  {hit.score:.3f}  {snippet}")


if __name__ == "__main__":
    asyncio.run(main())
