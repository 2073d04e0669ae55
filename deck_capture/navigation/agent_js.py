from __future__ import annotations

AGENT_SCRIPT_VERSION = "4"


# Self-contained and idempotent. Installs `globalThis.__deckAgent`, a small set
# of synchronous DOM primitives the Python agent composes into navigation
# strategies. Waiting (settle delays) and trusted key input stay on the Python
# side; nothing here sleeps.
#
# Primitives:
# - findControls(selectors, limit): mark up to `limit` visible+enabled matches
# - clickControl(index): click a previously marked control
# - clickContent(selectors): click the first visible content region
# - swipe(selectors): synthetic right-to-left touch swipe on a content region
# - callHook(names): call the first global advance function found
# - bumpUrlParam(params): increment a numeric query param via pushState
# - location(): current href
# - scrollState(containers) / scrollBy(fraction, containers)
# - blockScroll(blockSelector, lookahead, containers)
# - prepare(containers): reset scroll positions to the top
# - unlock(gate): fill email/passcode inputs and submit
# - hasSlideIndicators(): visible slide counters or slide containers
# - pageInfo(): navigation affordances + estimated unit count
AGENT_SCRIPT_SOURCE = r"""
(() => {
  const VERSION = "4";
  const g = globalThis;
  if (g.__deckAgent && g.__deckAgent.__version === VERSION) return true;

  const MARK = "data-deck-agent-candidate";
  const INDICATORS = '[data-slide], .slide, .page, [class*="slide"], [class*="page"]';

  const query = (sel, root) => {
    try {
      return Array.from((root || document).querySelectorAll(sel));
    } catch (e) {
      return [];
    }
  };

  const visible = (el) => {
    if (!el || !el.isConnected) return false;
    const style = getComputedStyle(el);
    if (style.visibility === "hidden" || style.display === "none") return false;
    if (el.offsetParent === null && style.position !== "fixed") return false;
    const r = el.getBoundingClientRect();
    return r.width > 0 && r.height > 0;
  };

  const enabled = (el) => !el.disabled && el.getAttribute("aria-disabled") !== "true";

  const click = (el) => {
    el.scrollIntoView({ block: "center", inline: "center" });
    if (typeof el.click === "function") {
      el.click();
    } else {
      el.dispatchEvent(new MouseEvent("click", { view: window, bubbles: true, cancelable: true }));
    }
  };

  const scroller = (containers) => {
    for (const sel of containers || []) {
      for (const el of query(sel)) {
        if (el.scrollHeight > el.clientHeight + 1 && visible(el)) return el;
      }
    }
    return document.scrollingElement || document.documentElement;
  };

  const stateOf = (el) => {
    const isRoot = el === document.scrollingElement || el === document.documentElement;
    const top = Math.round(isRoot ? (window.pageYOffset || el.scrollTop || 0) : el.scrollTop);
    const viewport = isRoot ? window.innerHeight : el.clientHeight;
    const height = el.scrollHeight;
    return { top, viewport, height, atBottom: top + viewport >= height - 2 };
  };

  g.__deckAgent = {
    __version: VERSION,

    findControls(selectors, limit) {
      query(`[${MARK}]`).forEach((el) => el.removeAttribute(MARK));
      const out = [];
      const seen = new Set();
      for (const sel of selectors) {
        for (const el of query(sel)) {
          if (seen.has(el) || !visible(el) || !enabled(el)) continue;
          seen.add(el);
          el.setAttribute(MARK, String(out.length));
          out.push({ index: out.length, selector: sel });
          if (out.length >= limit) return out;
        }
      }
      return out;
    },

    clickControl(index) {
      const el = document.querySelector(`[${MARK}="${Number(index)}"]`);
      if (!el || !visible(el) || !enabled(el)) return false;
      click(el);
      return true;
    },

    clickContent(selectors) {
      for (const sel of selectors) {
        const el = query(sel).find(visible);
        if (el) {
          el.click();
          return sel;
        }
      }
      return null;
    },

    swipe(selectors) {
      for (const sel of selectors) {
        const el = query(sel).find(visible);
        if (!el) continue;
        try {
          const r = el.getBoundingClientRect();
          const y = r.top + r.height * 0.5;
          const touch = (x) => new Touch({ identifier: 1, target: el, clientX: x, clientY: y });
          const start = touch(r.left + r.width * 0.8);
          const end = touch(r.left + r.width * 0.2);
          el.dispatchEvent(new TouchEvent("touchstart", { bubbles: true, cancelable: true, touches: [start], changedTouches: [start] }));
          el.dispatchEvent(new TouchEvent("touchmove", { bubbles: true, cancelable: true, touches: [end], changedTouches: [end] }));
          el.dispatchEvent(new TouchEvent("touchend", { bubbles: true, cancelable: true, touches: [], changedTouches: [end] }));
          return true;
        } catch (e) {
          return false;
        }
      }
      return false;
    },

    callHook(names) {
      for (const name of names) {
        const fn = window[name];
        if (typeof fn !== "function") continue;
        try {
          fn.call(window);
          return name;
        } catch (e) {
          continue;
        }
      }
      return null;
    },

    bumpUrlParam(params) {
      const url = new URL(location.href);
      for (const p of params) {
        if (!url.searchParams.has(p)) continue;
        const next = (parseInt(url.searchParams.get(p), 10) || 0) + 1;
        url.searchParams.set(p, String(next));
        history.pushState(history.state, "", url.toString());
        window.dispatchEvent(new PopStateEvent("popstate", { state: history.state }));
        return `${p}=${next}`;
      }
      return null;
    },

    location() {
      return location.href;
    },

    scrollState(containers) {
      return stateOf(scroller(containers));
    },

    scrollBy(fraction, containers) {
      const el = scroller(containers);
      const before = stateOf(el);
      const delta = Math.round(before.viewport * Number(fraction || 0.8));
      if (el === document.scrollingElement || el === document.documentElement) {
        window.scrollBy({ top: delta, behavior: "instant" });
      } else {
        el.scrollTop += delta;
      }
      return stateOf(el);
    },

    blockScroll(blockSelector, lookahead, containers) {
      const blocks = query(blockSelector);
      if (!blocks.length) return false;
      const vh = window.innerHeight;
      const first = blocks.findIndex((b) => {
        const r = b.getBoundingClientRect();
        return r.top >= 0 && r.top <= vh;
      });
      if (first < 0) return false;
      const ahead = blocks.slice(first + 1, first + 1 + Math.max(1, Number(lookahead) || 3));
      if (!ahead.length) return false;
      ahead[ahead.length - 1].scrollIntoView({ behavior: "instant", block: "start", inline: "nearest" });
      return true;
    },

    prepare(containers) {
      window.scrollTo({ top: 0, behavior: "instant" });
      const root = document.scrollingElement || document.documentElement;
      root.scrollTop = 0;
      for (const sel of containers || []) {
        query(sel).forEach((el) => {
          el.scrollTop = 0;
        });
      }
      return true;
    },

    unlock(gate) {
      const email = gate && gate.email;
      const passcode = gate && gate.passcode;
      if (!email && !passcode) return { attempted: false, submitted: false };
      const fill = (el, value) => {
        const setter = Object.getOwnPropertyDescriptor(HTMLInputElement.prototype, "value").set;
        setter.call(el, value);
        el.dispatchEvent(new Event("input", { bubbles: true }));
        el.dispatchEvent(new Event("change", { bubbles: true }));
      };
      const emailInput = query('input[type="email"], input[name="email"]').find(visible);
      const passInput = query('input[type="password"], input[name="passcode"]').find(visible);
      let filled = false;
      if (email && emailInput) {
        fill(emailInput, email);
        filled = true;
      }
      if (passcode && passInput) {
        fill(passInput, passcode);
        filled = true;
      }
      const submit = query('button[type="submit"], button[data-test="submit"], input[type="submit"]').find(visible);
      if (filled && submit) {
        submit.click();
        return { attempted: true, submitted: true };
      }
      return { attempted: true, submitted: false };
    },

    hasSlideIndicators() {
      return query(INDICATORS).filter(visible).length > 0;
    },

    pageInfo() {
      const hasNextButtons = !!document.querySelector(
        '[data-testid="next"], button[aria-label="Next"], [data-test="player-next-button"], [aria-label="Next slide"], button[aria-label*="next"], button[aria-label*="Next"]'
      );
      const indicators = query(INDICATORS).filter(visible).length;
      const dataSlides = query("[data-slide]").length;
      return {
        url: location.href,
        hostname: location.hostname,
        pathname: location.pathname,
        title: document.title,
        hasNextButtons,
        hasSlideIndicators: indicators > 0,
        hasNavigation: hasNextButtons || indicators > 0,
        estimatedUnitCount: dataSlides || indicators || null,
      };
    },
  };
  return true;
})()
"""


__all__ = ["AGENT_SCRIPT_SOURCE", "AGENT_SCRIPT_VERSION"]
