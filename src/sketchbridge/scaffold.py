"""Scripts injected into the execution context around user code.

The prefix resolves the parent origin, installs console capture and error
reporting, starts the canvas size reporter and posts ``ready`` before opening
the instance wrapper; user code follows on its own lines, unindented, so the only
line drift is ``injected_lines``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

from .linemap import ErrorLineMapper

_BRIDGE_PRELUDE = (
    "(function () {",
    "  var bridge = window.__sketchBridge = window.__sketchBridge || {};",
    "  bridge.sketchInstanceId = {sketch_id};",
    "  bridge.logs = bridge.logs || [];",
    "  bridge.parentOrigin = (function () {",
    "    try {",
    "      if (document.referrer) { return new URL(document.referrer).origin; }",
    "      if (window.location.ancestorOrigins && window.location.ancestorOrigins.length) {",
    "        return window.location.ancestorOrigins[0];",
    "      }",
    "    } catch (e) {",
    "      // fall back to the frame's own origin",
    "    }",
    "    return window.location.origin;",
    "  })();",
    "  function post(message) {",
    "    message.sketchInstanceId = bridge.sketchInstanceId;",
    "    window.parent.postMessage(message, bridge.parentOrigin);",
    "  }",
    "  function describe(arg) {",
    "    if (typeof arg === 'object') {",
    "      try { return JSON.stringify(arg); } catch (e) { return String(arg); }",
    "    }",
    "    return String(arg);",
    "  }",
    "  [['log', ''], ['error', 'Error: '], ['warn', 'Warning: ']].forEach(function (entry) {",
    "    var original = console[entry[0]].bind(console);",
    "    console[entry[0]] = function () {",
    "      var args = Array.prototype.slice.call(arguments);",
    "      try {",
    "        var message = entry[1] + args.map(describe).join(' ');",
    "        bridge.logs.push(message);",
    "        if (typeof bridge.appendLog === 'function') { bridge.appendLog(message); }",
    "      } catch (e) {",
    "        original('[sketch console bridge error]', e);",
    "      }",
    "      original.apply(null, args);",
    "    };",
    "  });",
    "  window.addEventListener('error', function (event) {",
    "    var stack = event.error && event.error.stack ? String(event.error.stack) : undefined;",
    "    post({ type: 'error', message: String(event.message), stack: stack, lineno: event.lineno });",
    "  });",
    "  bridge.lastWidth = 0;",
    "  bridge.lastHeight = 0;",
    "  if (!bridge.reportSize) {",
    "    bridge.reportSize = function () {",
    "      var canvas = document.querySelector('canvas');",
    "      if (!canvas) { return; }",
    "      // room for the frame border",
    "      var width = canvas.offsetWidth + 4;",
    "      var height = canvas.offsetHeight + 4;",
    "      if (width !== bridge.lastWidth || height !== bridge.lastHeight) {",
    "        bridge.lastWidth = width;",
    "        bridge.lastHeight = height;",
    "        post({ type: 'resize', width: width, height: height });",
    "      }",
    "    };",
    "    new MutationObserver(function () { setTimeout(bridge.reportSize, 100); })",
    "      .observe(document.documentElement, { childList: true, subtree: true });",
    "    setInterval(bridge.reportSize, 500);",
    "  }",
    "  post({ type: 'ready' });",
)

_SKETCH_OPEN = ("  new window.p5(function ({namespace}) {{",)
_SKETCH_CLOSE = (
    "  }}, document.getElementById({container_id}) || undefined);",
    "  post({{ type: 'execution-complete' }});",
    "}})();",
)

_PLAIN_OPEN = ("  try {",)
_PLAIN_CLOSE = (
    "  }} catch (error) {{",
    "    post({{ type: 'error', message: String(error && error.message || error), stack: error && error.stack }});",
    "  }}",
    "  post({{ type: 'execution-complete' }});",
    "}})();",
)


@dataclass(frozen=True, slots=True)
class InjectedScript:
    text: str
    injected_lines: int

    def mapper(self, source: str, transpiled: str = "") -> ErrorLineMapper:
        return ErrorLineMapper(source, transpiled, self.injected_lines)


def _prelude(sketch_id: str) -> list[str]:
    lines = list(_BRIDGE_PRELUDE)
    lines[2] = lines[2].replace("{sketch_id}", json.dumps(sketch_id))
    return lines


def _assemble(prefix: list[str], code: str, suffix: list[str]) -> InjectedScript:
    head = "\n".join(prefix)
    text = f"{head}\n{code}\n" + "\n".join(suffix)
    return InjectedScript(text=text, injected_lines=ErrorLineMapper.count_lines(head))


def build_sketch_script(
    code: str,
    sketch_id: str,
    namespace: str = "_p",
    container_id: str = "sketch-container",
) -> InjectedScript:
    """Wrap transpiled instance-mode *code* so it runs against a fresh instance."""

    if not namespace.isidentifier():
        raise ValueError(f"Instance namespace must be an identifier, got {namespace!r}")
    prefix = _prelude(sketch_id) + [line.format(namespace=namespace) for line in _SKETCH_OPEN]
    suffix = [line.format(container_id=json.dumps(container_id)) for line in _SKETCH_CLOSE]
    return _assemble(prefix, code, suffix)


def build_plain_script(code: str, sketch_id: str) -> InjectedScript:
    """Wrap non-sketch *code* with the same console capture and reporting."""

    prefix = _prelude(sketch_id) + list(_PLAIN_OPEN)
    suffix = [line.format() for line in _PLAIN_CLOSE]
    return _assemble(prefix, code, suffix)
