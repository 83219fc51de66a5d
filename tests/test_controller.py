"""Behavioural tests for the sketch run controller."""

from __future__ import annotations

import asyncio
from textwrap import dedent

from sketchbridge.config import BridgeSettings
from sketchbridge.controller import InjectionError, SketchRunner, looks_like_sketch
from sketchbridge.messaging import MessageChannel, MessageEvent
from sketchbridge.scaffold import build_sketch_script

SKETCH = dedent(
    """\
    let x = 0;
    function setup() {
      createCanvas(200, 100);
    }
    function draw() {
      x = missing.value;
    }"""
)

INJECTED = build_sketch_script("", "sizing").injected_lines


class _RecordingInjector:
    def __init__(self, fail: Exception | None = None) -> None:
        self.scripts: list[str] = []
        self.fail = fail

    async def inject(self, script: str) -> None:
        self.scripts.append(script)
        if self.fail is not None:
            raise self.fail


class _GatedInjector:
    def __init__(self) -> None:
        self.gates: list[asyncio.Event] = []

    async def inject(self, script: str) -> None:
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _runner(injector, **kwargs) -> SketchRunner:
    kwargs.setdefault("settings", BridgeSettings())
    return SketchRunner(injector, **kwargs)


def test_looks_like_sketch():
    assert looks_like_sketch("function setup() {}")
    assert looks_like_sketch("const setup = () => {}")
    assert looks_like_sketch("setup = function () {}")
    assert looks_like_sketch("LET SETUP = 1")
    assert not looks_like_sketch("console.log('hello')")
    assert not looks_like_sketch("function setupScene() {}")


def test_run_transpiles_and_injects_scoped_script():
    injector = _RecordingInjector()
    runner = _runner(injector)
    outcome = asyncio.run(runner.run(SKETCH))
    assert outcome.success
    assert not outcome.stale
    assert "_p.setup" in (outcome.transpiled or "")
    assert len(injector.scripts) == 1
    script = injector.scripts[0]
    assert "_p.createCanvas(200, 100)" in script
    assert outcome.sketch_id in script
    assert runner.channel.expected_sketch_id == outcome.sketch_id


def test_plain_code_is_injected_untouched():
    injector = _RecordingInjector()
    outcome = asyncio.run(_runner(injector).run("console.log(width);"))
    assert outcome.success
    assert outcome.transpiled == "console.log(width);"
    assert "new window.p5" not in injector.scripts[0]


def test_syntax_error_is_reported_without_injection():
    injector = _RecordingInjector()
    outcome = asyncio.run(_runner(injector).run("function setup() {\n  createCanvas(1, 1\n"))
    assert not outcome.success
    assert outcome.text is not None and outcome.text.startswith("Error: ")
    assert injector.scripts == []


def test_each_attempt_gets_a_new_sketch_id():
    runner = _runner(_RecordingInjector())
    first = asyncio.run(runner.run(SKETCH))
    second = asyncio.run(runner.run(SKETCH))
    assert first.sketch_id != second.sketch_id
    assert runner.current_sketch_id == second.sketch_id


def test_runtime_error_lines_are_mapped_to_source():
    reported: list = []
    runner = _runner(_RecordingInjector(), on_error=reported.append)
    outcome = asyncio.run(runner.run(SKETCH))
    line = INJECTED + 6
    event = MessageEvent(
        origin="http://localhost:5173",
        data={
            "type": "error",
            "message": "ReferenceError: missing is not defined",
            "stack": f"ReferenceError: missing is not defined\n    at _p.draw (blob:http://localhost:5173/x:{line}:7)",
            "sketchInstanceId": outcome.sketch_id,
        },
    )
    assert runner.channel.handle(event)
    assert len(reported) == 1
    error = reported[0]
    assert error.sketch_id == outcome.sketch_id
    assert error.message == "ReferenceError: missing is not defined"
    assert "blob:http://localhost:5173/x:6:7" in error.mapped_text
    assert runner.errors == [error]


def test_thrown_value_without_stack_maps_listener_line():
    reported: list = []
    runner = _runner(_RecordingInjector(), on_error=reported.append)
    outcome = asyncio.run(runner.run(SKETCH))
    event = MessageEvent(
        origin="http://localhost:5173",
        data={
            "type": "error",
            "message": "Uncaught out of paint",
            "lineno": INJECTED + 5,
            "sketchInstanceId": outcome.sketch_id,
        },
    )
    assert runner.channel.handle(event)
    assert reported[0].mapped_text == "Uncaught out of paint (line 5)"


def test_errors_from_previous_attempt_are_ignored():
    reported: list = []
    runner = _runner(_RecordingInjector(), on_error=reported.append)
    first = asyncio.run(runner.run(SKETCH))
    asyncio.run(runner.run(SKETCH))
    event = MessageEvent(
        origin="http://localhost",
        data={"type": "error", "message": "late", "sketchInstanceId": first.sketch_id},
    )
    assert not runner.channel.handle(event)
    assert reported == []


def test_injection_error_is_mapped():
    message = f"SyntaxError: Unexpected token at line {INJECTED + 3}"
    runner = _runner(_RecordingInjector(fail=InjectionError(message)))
    outcome = asyncio.run(runner.run(SKETCH))
    assert not outcome.success
    assert outcome.text == "SyntaxError: Unexpected token at line 3"


def test_superseded_attempt_is_stale():
    injector = _GatedInjector()
    runner = _runner(injector)

    async def scenario():
        first = asyncio.create_task(runner.run(SKETCH))
        await asyncio.sleep(0)
        second = asyncio.create_task(runner.run(SKETCH))
        await asyncio.sleep(0)
        injector.gates[1].set()
        latest = await second
        injector.gates[0].set()
        earlier = await first
        return earlier, latest

    earlier, latest = asyncio.run(scenario())
    assert earlier.stale
    assert not latest.stale
    assert runner.current_sketch_id == latest.sketch_id


def test_rerun_resets_resize_dedup():
    resizes: list = []
    clock = _Clock()
    channel = MessageChannel(
        allowed_origins=["http://localhost"],
        on_resize=lambda w, h, sid: resizes.append((w, h, sid)),
        clock=clock,
    )
    runner = _runner(_RecordingInjector(), channel=channel)

    first = asyncio.run(runner.run(SKETCH))
    channel.handle(MessageEvent("http://localhost", {"type": "resize", "width": 204, "height": 104, "sketchInstanceId": first.sketch_id}))
    clock.now += 1.0
    second = asyncio.run(runner.run(SKETCH))
    channel.handle(MessageEvent("http://localhost", {"type": "resize", "width": 204, "height": 104, "sketchInstanceId": second.sketch_id}))
    assert resizes == [(204, 104, first.sketch_id), (204, 104, second.sketch_id)]


def test_custom_namespace_from_settings():
    injector = _RecordingInjector()
    settings = BridgeSettings(SKETCHBRIDGE_INSTANCE_NAMESPACE="sk")
    outcome = asyncio.run(SketchRunner(injector, settings=settings).run(SKETCH))
    assert "sk.setup" in (outcome.transpiled or "")
    assert "new window.p5(function (sk) {" in injector.scripts[0]
