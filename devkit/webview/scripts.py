from __future__ import annotations

import json

CONSOLE_BINDING_NAME = "__webdevkit_console"


# NOTE: This script runs at document start in every frame and is idempotent
# (guarded by `__webdevkit_initialized`). It wraps console.{log,warn,error,info,debug},
# posts `{method, args}` as JSON to the host binding, then calls the original
# method. Objects are serialized with JSON.stringify(arg, null, 2); anything that
# fails to serialize falls back to String(arg).
CONSOLE_HOOK_SOURCE = (
    r"""
(() => {
  const g = globalThis;
  if (g.__webdevkit_initialized) {
    return { ok: true, already: true };
  }
  g.__webdevkit_initialized = true;

  const BINDING = "__BINDING__";
  const methods = ["log", "warn", "error", "info", "debug"];

  function serialize(arg) {
    try {
      if (typeof arg === "object" && arg !== null) {
        if (arg instanceof Error) return String(arg.stack || arg.message || arg);
        return JSON.stringify(arg, null, 2);
      }
      return String(arg);
    } catch (_e) {
      try {
        return String(arg);
      } catch (_e2) {
        return "<unserializable>";
      }
    }
  }

  for (const method of methods) {
    const original = g.console && g.console[method];
    if (typeof original !== "function") continue;
    g.console[method] = function (...args) {
      try {
        const post = g[BINDING];
        if (typeof post === "function") {
          post(JSON.stringify({ method, args: args.map(serialize) }));
        }
      } catch (_e) {
        // ignore
      }
      return original.apply(this, args);
    };
  }
  return { ok: true, already: false };
})();
"""
).replace("__BINDING__", CONSOLE_BINDING_NAME)


def message_handler_shim(name: str, binding: str) -> str:
    """Expose `webdevkit.messageHandlers[name].postMessage(body)` backed by a CDP binding."""
    return (
        r"""
(() => {
  const g = globalThis;
  const name = __NAME__;
  const binding = __BINDING__;
  g.webdevkit = g.webdevkit || {};
  g.webdevkit.messageHandlers = g.webdevkit.messageHandlers || {};
  if (g.webdevkit.messageHandlers[name]) return true;
  g.webdevkit.messageHandlers[name] = {
    postMessage(body) {
      const post = g[binding];
      if (typeof post !== "function") return;
      let payload;
      try {
        payload = JSON.stringify({ body, frame: String(g.location && g.location.href) });
      } catch (_e) {
        payload = JSON.stringify({ body: String(body), frame: String(g.location && g.location.href) });
      }
      post(payload);
    },
  };
  return true;
})();
"""
        .replace("__NAME__", json.dumps(name))
        .replace("__BINDING__", json.dumps(binding))
    )


def message_binding_name(name: str) -> str:
    safe = "".join(ch if ch.isalnum() or ch == "_" else "_" for ch in name)
    return f"__webdevkit_msg_{safe}"


# Returns a JSON string: {tag, id, className, innerText, children} rooted at <body>.
DOM_TREE_SOURCE = r"""
(() => {
  function getDomTree(element) {
    let directText = "";
    for (const node of element.childNodes) {
      if (node.nodeType === Node.TEXT_NODE) {
        const text = node.textContent.trim();
        if (text) directText += (directText ? " " : "") + text;
      }
    }
    const cls = typeof element.className === "string"
      ? element.className
      : (element.className && element.className.baseVal) || "";
    const obj = {
      tag: element.tagName || "",
      id: element.id || "",
      className: cls || "",
      innerText: element.children.length === 0
        ? (directText || (element.innerText && element.innerText.trim()) || null)
        : (directText || null),
      children: [],
    };
    for (const child of element.children) obj.children.push(getDomTree(child));
    return obj;
  }
  if (!document.body) return null;
  return JSON.stringify(getDomTree(document.body));
})()
"""

LOCAL_STORAGE_SOURCE = r"""
(() => {
  try {
    return Object.entries(localStorage || {});
  } catch (_e) {
    return [];
  }
})()
"""

SESSION_STORAGE_SOURCE = r"""
(() => {
  try {
    return Object.entries(sessionStorage || {});
  } catch (_e) {
    return [];
  }
})()
"""

COOKIES_SOURCE = "document.cookie || ''"
