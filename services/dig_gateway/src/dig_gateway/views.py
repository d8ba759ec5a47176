"""
HTML pages rendered by the gateway. Plain string templates; every dynamic
value goes through ``html.escape``.
"""
from __future__ import annotations

from html import escape
from typing import Iterable, Optional, Sequence, Tuple

from core_config.constants import PEER_CONTENT_PORT

from .models import StoreState
from .udi import Udi

_BASE_STYLE = """
      body { font-family: Arial, sans-serif; background-color: #f4f4f4; margin: 0; padding: 20px; }
      h1 { font-size: 2em; color: #333; margin-bottom: 20px; }
      a { text-decoration: none; color: #007bff; word-break: break-all; }
      a:hover { text-decoration: underline; }
      .box { max-width: 500px; margin: 10vh auto; border: 1px solid #ddd; border-radius: 10px;
             padding: 20px; background-color: #fff; text-align: center; }
      .card { border: 1px solid #ddd; border-radius: 10px; margin-bottom: 20px; padding: 20px;
              background-color: #f9f9f9; display: flex; justify-content: space-between; }
      .muted { color: #777; }
      .button { background-color: #007bff; color: #fff; padding: 10px 20px; border-radius: 5px;
                display: inline-block; margin-top: 20px; }
"""


def _page(title: str, body: str, *, head_extra: str = "") -> str:
    return (
        "<html>\n  <head>\n"
        f"    <title>{escape(title)}</title>\n"
        f"    {head_extra}\n"
        f"    <style>{_BASE_STYLE}    </style>\n"
        "  </head>\n  <body>\n"
        f"{body}\n"
        "  </body>\n</html>\n"
    )


def format_bytes(size: int) -> str:
    units = ("Bytes", "KB", "MB", "GB", "TB")
    value = float(max(0, int(size or 0)))
    idx = 0
    while value >= 1024 and idx < len(units) - 1:
        value /= 1024
        idx += 1
    return f"{int(value)} {units[idx]}" if idx == 0 else f"{value:.2f} {units[idx]}"


def render_store_row(udi: Udi, state: Optional[StoreState], host: str) -> str:
    """One card on the stores index. ``state`` is None while the store syncs."""
    urn = udi.to_urn()
    if state is None:
        label, description, size = "Syncing...", "Syncing data, please wait...", "Syncing..."
    else:
        label = state.label or "No Label"
        description = state.description or "No Description Available"
        size = format_bytes(state.size_bytes)
    webapp = f"//{udi.chain_name}.{udi.store_id_base32}.{host}" if host else ""
    webapp_link = f' <a href="{escape(webapp)}">View as Webapp</a>' if webapp else ""
    return (
        '    <div class="card">\n'
        "      <div>\n"
        f"        <h2>{escape(label)}</h2>\n"
        f'        <p class="muted">{escape(description)}</p>\n'
        f'        <p>Store: <a href="/{escape(urn)}">{escape(urn)}</a>{webapp_link}</p>\n'
        "      </div>\n"
        f"      <div><p>{escape(size)}</p></div>\n"
        "    </div>"
    )


def render_stores_index(rows: Iterable[str]) -> str:
    return _page("Index Of Stores", "    <h1>Index Of Stores</h1>\n" + "\n".join(rows))


def render_keys_index(store_id: str, links: Sequence[Tuple[str, str]]) -> str:
    """``links`` holds (decoded key, href) pairs."""
    items = "\n".join(
        f'        <li><a href="{escape(href)}">{escape(label)}</a></li>' for label, href in links
    )
    body = (
        f"    <h1>Index of {escape(store_id)}</h1>\n"
        "    <div>\n      <ul>\n"
        f"{items}\n"
        "      </ul>\n    </div>"
    )
    return _page(f"Index of {store_id}", body)


def render_syncing(store_id: str, state: Optional[StoreState]) -> str:
    label = (state.label if state else None) or "No Label"
    description = (state.description if state else None) or "No Description Available"
    body = (
        '    <div class="box">\n'
        f"      <h2>{escape(label)}</h2>\n"
        f'      <p class="muted">{escape(description)}</p>\n'
        f'      <p>Store ID: <a href="/{escape(store_id)}">{escape(store_id)}</a></p>\n'
        "      <p>Store is still syncing. This page will automatically refresh when the data has been synced.</p>\n"
        "    </div>"
    )
    return _page("Syncing", body, head_extra='<meta http-equiv="refresh" content="10">')


def render_peer_redirect(udi: Udi, peer: str) -> str:
    href = f"http://{peer}:{PEER_CONTENT_PORT}/{udi.to_urn()}"
    body = (
        '    <div class="box">\n'
        "      <h2>Store Not Found on This Peer</h2>\n"
        "      <p>Click the button below to redirect to another peer.</p>\n"
        f'      <a class="button" href="{escape(href)}">Redirect</a>\n'
        "    </div>"
    )
    return _page("Store Not Found", body)


def render_store_not_found() -> str:
    body = '    <div class="box">\n      <h2>Store Not Found on This Network</h2>\n    </div>'
    return _page("Store Not Found", body)


def render_unknown_chain(store_id: Optional[str], chain_name: str) -> str:
    body = (
        '    <div class="box">\n'
        "      <h2>Unknown Chain</h2>\n"
        f"      <p>The chain <strong>{escape(chain_name)}</strong> is not supported by this gateway.</p>\n"
        f'      <p class="muted">Store: {escape(store_id or "")}</p>\n'
        "    </div>"
    )
    return _page("Unknown Chain", body)


__all__ = [
    "format_bytes",
    "render_store_row",
    "render_stores_index",
    "render_keys_index",
    "render_syncing",
    "render_peer_redirect",
    "render_store_not_found",
    "render_unknown_chain",
]
