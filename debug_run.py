from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

from pipeline.graph import pipeline
from pipeline.session import LandmarkSession

logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


async def main(image_path: str) -> None:
    """
    Run a sample debug pass through the pipeline.

    Expects a `test.jpg` image in the working directory unless a path is
    given on the command line.
    """
    raw = Path(image_path).read_bytes()

    # Stream: see each node's state delta live
    async for step in pipeline.astream({"raw_image": raw, "mime_type": None}):
        node = list(step.keys())[0]
        delta = {k: v for k, v in (step[node] or {}).items() if k not in ("raw_image", "image", "audio")}
        print("\n" + "=" * 40)
        print(f"NODE: {node}")
        print(f"DELTA: {delta}")

    # Same image through the session state machine
    session = LandmarkSession()
    session.on_change(lambda s: print(f"PHASE: {s.phase.value} {s.message or ''}"))
    await session.submit(raw)
    if session.result:
        print(session.result.model_dump_json(indent=2, exclude={"audio"}))


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "test.jpg"))
