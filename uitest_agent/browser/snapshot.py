"""DOM snapshots handed to the language model.

The pruned snapshot is a JSON tree of tags, attributes and text, small
enough for a prompt and stable enough to fingerprint. The full snapshot is
the raw page HTML, used only when repairing a failed test.
"""

from typing import Any, Dict

from playwright.async_api import Page

PRUNED_SNAPSHOT_SCRIPT = r"""
(config) => {
  const { skipStyles, skipScripts, interactiveOnly } = config;
  const INTERACTIVE = ["A", "BUTTON", "INPUT", "SELECT", "TEXTAREA"];
  const walk = (node) => {
    if (node.nodeType === Node.TEXT_NODE) {
      const text = node.textContent.trim();
      return text.length > 0 ? text : null;
    }
    if (node.nodeType !== Node.ELEMENT_NODE) return null;
    if (skipStyles && node.tagName === "STYLE") return null;
    if (skipScripts && (node.tagName === "SCRIPT" || node.tagName === "NOSCRIPT")) return null;

    const children = Array.from(node.childNodes)
      .map(walk)
      .filter((c) => c !== null && c !== "");

    if (interactiveOnly && children.length === 0) {
      const isInteractive =
        INTERACTIVE.includes(node.tagName) ||
        node.hasAttribute("onclick") ||
        (window.getComputedStyle(node).cursor === "pointer" && node.tagName !== "BODY" && node.tagName !== "HTML");
      if (!isInteractive) return null;
    }

    const attrs = {};
    for (const attr of node.attributes) {
      attrs[attr.name] = attr.value;
    }
    return { tag: node.tagName, attrs: attrs, children: children };
  };
  return JSON.stringify(walk(document.body), null, 2);
}
"""


def snapshot_options(dom_config) -> Dict[str, Any]:
    if dom_config is None:
        return {"skipStyles": True, "skipScripts": True, "interactiveOnly": False}
    return {
        "skipStyles": dom_config.skip_styles,
        "skipScripts": dom_config.skip_scripts,
        "interactiveOnly": dom_config.interactive_only,
    }


async def pruned_dom_snapshot(page: Page, dom_config=None) -> str:
    snapshot = await page.evaluate(PRUNED_SNAPSHOT_SCRIPT, snapshot_options(dom_config))
    return snapshot or ""


async def full_dom_snapshot(page: Page) -> str:
    return await page.content()
