"""Run a deterministic offline demo of one sketch execution attempt."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = REPO_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from sketchbridge.config import BridgeSettings
from sketchbridge.controller import RuntimeSketchError, SketchRunner
from sketchbridge.messaging import MessageEvent
from sketchbridge.scaffold import build_sketch_script

DEMO_ORIGIN = "http://localhost:3030"


class RecordingInjector:
    """Injector that keeps scripts in memory instead of loading them in a frame."""

    def __init__(self) -> None:
        self.scripts: list[str] = []

    async def inject(self, script: str) -> None:
        self.scripts.append(script)


def _report(error: RuntimeSketchError) -> None:
    print("\n--- Runtime error (mapped) ---\n")
    print(error.mapped_text)


def main() -> None:
    sketch_path = REPO_ROOT / "examples" / "bouncing_ball.js"
    source = sketch_path.read_text(encoding="utf-8")
    injector = RecordingInjector()
    runner = SketchRunner(injector, settings=BridgeSettings(), on_error=_report)

    outcome = asyncio.run(runner.run(source))
    if not outcome.success:
        print(outcome.text)
        return
    print("Sketch id:", outcome.sketch_id)
    print("\n--- Transpiled sketch ---\n")
    print(outcome.transpiled)

    # the frame reports lines of the whole injected script
    injected = build_sketch_script("", "sizing").injected_lines
    reported_line = injected + 14
    runner.channel.handle(
        MessageEvent(
            origin=DEMO_ORIGIN,
            data={
                "type": "error",
                "message": "TypeError: Cannot read properties of undefined (reading 'x')",
                "stack": f"TypeError: Cannot read properties of undefined\n    at _p.draw (blob:{DEMO_ORIGIN}/demo:{reported_line}:18)",
                "sketchInstanceId": outcome.sketch_id,
            },
        )
    )


if __name__ == "__main__":
    main()
